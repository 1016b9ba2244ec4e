from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from dotenv import load_dotenv

from .config_loader import load_config
from .core.orchestrator import StreamOrchestrator
from .providers.registry import ProviderRegistry
from .secrets.sources import SecretsResolver
from .storage.config_store import YamlConfigStore


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_app(config_path: Path, client_factory: Optional[Callable[..., Any]] = None) -> Dict[str, Any]:
    """
    Composition root: load .env and YAML, wire secrets into a config store, and
    build the orchestrator on top of it.
    Returns: dict with cfg, store, orchestrator.
    """
    load_dotenv()
    cfg = load_config(config_path)

    ProviderRegistry.ensure_imports()  # make sure built-ins register

    secrets_cfg = cfg["secrets"]
    resolver = SecretsResolver(method=secrets_cfg["method"], mapping=secrets_cfg.get("mapping") or {})
    store = YamlConfigStore(cfg, resolver)

    orchestrator = StreamOrchestrator(
        store,
        client_factory=client_factory,
        undeclared_tool_calls=cfg["runtime"]["undeclared_tool_calls"],
    )

    return {
        "cfg": cfg,
        "store": store,
        "orchestrator": orchestrator,
    }
