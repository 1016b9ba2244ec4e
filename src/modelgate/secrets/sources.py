# src/modelgate/secrets/sources.py

from __future__ import annotations
from typing import Protocol, Optional, Dict, Iterable, List, Union
import getpass
import logging
import os

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

# Accounts tried, in order, when a keychain item was stored without a known account name
_KEYRING_ACCOUNTS = ("api_key", "API_KEY", "default")


class SecretSource(Protocol):
    def get(self, service: str) -> Optional[str]: ...


class EnvSource:
    def get(self, service: str) -> Optional[str]:
        # 1) exact env var name (e.g. OPENAI_API_KEY)
        val = os.getenv(service)
        if val and val.strip():
            return val.strip()
        # 2) derived from a provider key (e.g. openai -> OPENAI_API_KEY)
        for key in (f"{service.upper()}_API_KEY", service.upper()):
            val = os.getenv(key)
            if val and val.strip():
                return val.strip()
        return None


class SystemKeyringSource:
    """
    OS keychain via the keyring package. A backend failure is logged and treated
    as a miss so the next source gets a chance.
    """

    def get(self, service: str) -> Optional[str]:
        try:
            cred = keyring.get_credential(service, None)
            if cred and cred.password and cred.password.strip():
                return cred.password.strip()
            for account in (*_KEYRING_ACCOUNTS, service, getpass.getuser()):
                val = keyring.get_password(service, account)
                if val and val.strip():
                    return val.strip()
        except KeyringError as e:
            logger.debug("Keyring lookup for %r failed: %s", service, e)
        return None


_ALLOWED_METHODS = {"env", "keyring"}


def _normalise_methods(method: Union[str, Iterable[str]]) -> List[str]:
    methods = [method] if isinstance(method, str) else list(method)
    norm = []
    for m in methods:
        key = str(m).strip().lower()
        if key not in _ALLOWED_METHODS:
            raise ValueError(f"Unknown secrets method '{m}'. Allowed: {sorted(_ALLOWED_METHODS)}")
        if key not in norm:
            norm.append(key)
    return norm


def build_secret_sources(method: Union[str, Iterable[str]]) -> List[SecretSource]:
    sources: List[SecretSource] = []
    for name in _normalise_methods(method):
        if name == "env":
            sources.append(EnvSource())
        elif name == "keyring":
            sources.append(SystemKeyringSource())
    return sources


class SecretsResolver:
    """
    Resolve secrets using one or more methods in order.
    mapping: per-provider map of names -> service/env-key
      e.g. { "openai": { "api_key": "openai" } } or { "openai": { "api_key": "OPENAI_API_KEY" } }
    """
    def __init__(self, method: Union[str, Iterable[str]], mapping: Dict[str, Dict[str, str]] | None = None):
        self._sources = build_secret_sources(method)
        self._map = mapping or {}

    def lookup(self, service: str) -> Optional[str]:
        for src in self._sources:
            val = src.get(service)
            if val:
                return val
        return None

    def secret(self, provider: str, name: str = "api_key") -> Optional[str]:
        return self.lookup(self._map.get(provider, {}).get(name, provider))

    def credentials(self, providers: Iterable[str]) -> Dict[str, Optional[str]]:
        """Credential set for the given built-in provider keys; None where nothing is configured."""
        return {p: self.secret(p) for p in providers}
