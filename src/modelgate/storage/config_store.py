from __future__ import annotations
from typing import Any, Dict, List, Optional

from modelgate.core.models import ProviderConfig
from modelgate.providers.registry import CREDENTIALED_KEYS
from modelgate.secrets.sources import SecretsResolver


class YamlConfigStore:
    """
    ConfigStore backed by a validated config dict (see config_loader.load_config).
    Secrets are looked up on every call, so each call is a fresh snapshot and
    a key exported after startup is picked up by the next request.
    """

    def __init__(self, cfg: Dict[str, Any], resolver: SecretsResolver):
        self._cfg = cfg
        self._resolver = resolver

    def get_custom_providers(self) -> List[ProviderConfig]:
        out = []
        for entry in self._cfg.get("custom_providers") or []:
            api_key = entry.get("api_key") or ""
            if not api_key and entry.get("api_key_secret"):
                api_key = self._resolver.lookup(entry["api_key_secret"]) or ""
            out.append(ProviderConfig(
                id=entry["id"],
                name=entry["name"],
                base_url=entry.get("base_url") or "",
                api_key=api_key,
                created_at=entry.get("created_at"),
                updated_at=entry.get("updated_at"),
            ))
        return out

    def get_credentials(self) -> Dict[str, Optional[str]]:
        return self._resolver.credentials(CREDENTIALED_KEYS)

    def get_base_urls(self) -> Dict[str, str]:
        providers = self._cfg.get("providers") or {}
        return {k: v["base_url"] for k, v in providers.items() if (v or {}).get("base_url")}
