# src/modelgate/config_loader.py

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import urlparse
import yaml

from .core.orchestrator import UNDECLARED_TOOL_CALL_POLICIES
from .providers.registry import BUILTIN_PROVIDERS

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    pass


def _require(d: Dict[str, Any], dotted: str, typ: type) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigError(f"Missing config key: {dotted}")
        cur = cur[k]
    if typ is str and not isinstance(cur, str):
        raise ConfigError(f"'{dotted}' must be a string")
    return cur


def _optional_str(entry: Dict[str, Any], key: str, where: str) -> str:
    val = entry.get(key)
    if val is None:
        return ""
    if not isinstance(val, str):
        raise ConfigError(f"'{where}.{key}' must be a string")
    return val


def _validate_base_url(url: str, where: str) -> None:
    # Blank is allowed here; the proceed-gate reports it with a friendlier message.
    if not url.strip():
        return
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"'{where}.base_url' must start with http:// or https://")


def _validate_custom_providers(raw: Any) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("'custom_providers' must be a list")

    seen = set()
    out: List[Dict[str, Any]] = []
    for i, entry in enumerate(raw):
        where = f"custom_providers[{i}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"'{where}' must be a mapping")
        pid = _optional_str(entry, "id", where).strip()
        name = _optional_str(entry, "name", where).strip()
        if not pid:
            raise ConfigError(f"'{where}.id' is required")
        if "/" in pid:
            raise ConfigError(f"'{where}.id' must not contain '/'")
        if pid in seen:
            raise ConfigError(f"Duplicate custom provider id '{pid}'")
        if not name:
            raise ConfigError(f"'{where}.name' is required")
        base_url = _optional_str(entry, "base_url", where)
        _validate_base_url(base_url, where)
        if entry.get("api_key") and entry.get("api_key_secret"):
            raise ConfigError(f"'{where}' sets both api_key and api_key_secret")
        seen.add(pid)
        out.append({
            "id": pid,
            "name": name,
            "base_url": base_url,
            "api_key": _optional_str(entry, "api_key", where),
            "api_key_secret": _optional_str(entry, "api_key_secret", where),
            "created_at": entry.get("created_at"),
            "updated_at": entry.get("updated_at"),
        })
    return out


def load_config(path: Path) -> Dict[str, Any]:
    if not path or not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"Config is empty or invalid YAML: {path}")

    # Validate required keys (no defaults here)
    method = _require(raw, "secrets.method", object)
    if not isinstance(method, (str, list)):
        raise ConfigError("'secrets.method' must be a string or a list of strings")
    mapping = raw["secrets"].get("mapping")
    if mapping is None:
        raw["secrets"]["mapping"] = {}
    elif not isinstance(mapping, dict):
        raise ConfigError("'secrets.mapping' must be a mapping")
    else:
        for prov, names in mapping.items():
            if not isinstance(names, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in names.items()
            ):
                raise ConfigError(f"'secrets.mapping.{prov}' must map names to service strings")
    policy = _require(raw, "runtime.undeclared_tool_calls", str).lower()
    if policy not in UNDECLARED_TOOL_CALL_POLICIES:
        raise ConfigError(
            f"Unknown runtime.undeclared_tool_calls '{policy}' "
            f"(expected one of {', '.join(UNDECLARED_TOOL_CALL_POLICIES)})."
        )
    raw["runtime"]["undeclared_tool_calls"] = policy

    # Built-in base URL overrides
    providers = raw.get("providers") or {}
    if not isinstance(providers, dict):
        raise ConfigError("'providers' must be a mapping")
    for key, pcfg in providers.items():
        if str(key).lower() not in BUILTIN_PROVIDERS:
            raise ConfigError(f"Unknown provider '{key}' under 'providers'")
        if not isinstance(pcfg, dict):
            raise ConfigError(f"'providers.{key}' must be a mapping")
        _validate_base_url(_optional_str(pcfg, "base_url", f"providers.{key}"), f"providers.{key}")
    raw["providers"] = {str(k).lower(): v for k, v in providers.items()}

    raw["custom_providers"] = _validate_custom_providers(raw.get("custom_providers"))

    logging_cfg = raw.get("logging") or {}
    if not isinstance(logging_cfg, dict):
        raise ConfigError("'logging' must be a mapping")
    level = str(logging_cfg.get("level", "WARNING")).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"Unknown logging.level '{level}'")
    raw["logging"] = {**logging_cfg, "level": level}

    return raw
