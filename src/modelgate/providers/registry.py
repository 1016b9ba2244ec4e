from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Type, Callable, Iterable, Mapping, Optional, Union
from importlib import import_module

from modelgate.core.errors import (
    MissingApiKey,
    MissingBaseUrl,
    ProviderNotFound,
    UnknownProvider,
)
from modelgate.core.models import ProviderConfig
from .identifiers import CUSTOM_PROVIDER_KEY, decode_custom, normalize_chat_base_url, provider_key

OPENAI_COMPATIBLE = "openai_compatible"

CONFIGURE_HINT = "Configure it under custom_providers in your modelgate config."


class ProviderRegistry:
    """
    Adapter classes keyed by wire family. Every provider modelgate knows about
    today speaks the OpenAI chat-completions wire, so there is one family; a
    provider with its own wire format registers its own adapter here.
    """
    _classes: Dict[str, Type] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[Type], Type]:
        name = name.lower()
        def deco(klass: Type) -> Type:
            cls._classes[name] = klass
            return klass
        return deco

    @classmethod
    def get(cls, name: str) -> Type:
        key = name.lower()
        if key not in cls._classes:
            raise KeyError(f"Adapter family '{name}' not registered")
        return cls._classes[key]

    @classmethod
    def ensure_imports(cls) -> None:
        """
        Import built-in adapters so their @register decorators run.
        Call once at bootstrap before get().
        """
        import_module("modelgate.providers.openai_adapter")


@dataclass(frozen=True)
class BuiltinProvider:
    key: str
    display_name: str
    base_url: str
    credential_field: Optional[str]   # None for local runtimes
    family: str = OPENAI_COMPATIBLE

    @property
    def is_local(self) -> bool:
        return self.credential_field is None


BUILTIN_PROVIDERS: Dict[str, BuiltinProvider] = {
    p.key: p
    for p in (
        BuiltinProvider("anthropic", "Anthropic", "https://api.anthropic.com/v1", "anthropic"),
        BuiltinProvider("openai", "OpenAI", "https://api.openai.com/v1", "openai"),
        BuiltinProvider("google", "Google AI", "https://generativelanguage.googleapis.com/v1beta/openai", "google"),
        BuiltinProvider("perplexity", "Perplexity", "https://api.perplexity.ai", "perplexity"),
        BuiltinProvider("openrouter", "OpenRouter", "https://openrouter.ai/api/v1", "openrouter"),
        BuiltinProvider("grok", "xAI", "https://api.x.ai/v1", "grok"),
        BuiltinProvider("ollama", "Ollama", "http://localhost:11434/v1", None),
        BuiltinProvider("lmstudio", "LM Studio", "http://localhost:1234/v1", None),
    )
}

CREDENTIALED_KEYS = tuple(k for k, p in BUILTIN_PROVIDERS.items() if not p.is_local)

# Local runtimes ignore the key, but the OpenAI client refuses an empty one.
LOCAL_API_KEY = "local"


@dataclass(frozen=True)
class BuiltinTarget:
    provider: BuiltinProvider
    remote_model: str
    base_url: str
    api_key: str

    @property
    def family(self) -> str:
        return self.provider.family

    @property
    def display_name(self) -> str:
        return self.provider.display_name


@dataclass(frozen=True)
class CustomTarget:
    provider: ProviderConfig
    remote_model: str
    base_url: str                      # already normalised for chat
    api_key: str
    family: str = OPENAI_COMPATIBLE

    @property
    def display_name(self) -> str:
        return self.provider.name


ResolvedProvider = Union[BuiltinTarget, CustomTarget]


def lookup_builtin(key: str) -> BuiltinProvider:
    provider = BUILTIN_PROVIDERS.get(key.lower())
    if provider is None:
        raise UnknownProvider(f"Unknown provider: {key}")
    return provider


def lookup_custom(provider_id: str, custom_providers: Iterable[ProviderConfig]) -> ProviderConfig:
    """
    Find a usable custom provider by id. Each configuration gap is its own
    error with a message meant for the user.
    """
    provider = next((p for p in custom_providers or () if p.id == provider_id), None)
    if provider is None:
        raise ProviderNotFound(f"Custom provider not found. {CONFIGURE_HINT}")
    if not (provider.base_url or "").strip():
        raise MissingBaseUrl(f'Custom provider "{provider.name}" is missing a Base URL. {CONFIGURE_HINT}')
    if not (provider.api_key or "").strip():
        raise MissingApiKey(f'Custom provider "{provider.name}" is missing an API key. {CONFIGURE_HINT}')
    return provider


def missing_credential_message(provider: BuiltinProvider) -> str:
    return f"Please add your {provider.display_name} API key to use this model."


def resolve(
    model_id: str,
    credentials: Mapping[str, Optional[str]],
    custom_providers: Iterable[ProviderConfig],
    base_urls: Optional[Mapping[str, str]] = None,
) -> ResolvedProvider:
    """
    Turn a model id plus a config snapshot into everything needed to open a
    connection. Raises on the first configuration gap.
    """
    key = provider_key(model_id)

    if key == CUSTOM_PROVIDER_KEY:
        ids = decode_custom(model_id)
        provider = lookup_custom(ids.provider_id, custom_providers)
        return CustomTarget(
            provider=provider,
            remote_model=ids.remote_model_id,
            base_url=normalize_chat_base_url(provider.base_url),
            api_key=provider.api_key.strip(),
        )

    provider = lookup_builtin(key)
    base_url = (base_urls or {}).get(key) or provider.base_url
    remote_model = model_id.split("::", 1)[1]
    if provider.is_local:
        return BuiltinTarget(provider, remote_model, base_url, LOCAL_API_KEY)

    api_key = (credentials.get(provider.credential_field) or "").strip()
    if not api_key:
        raise MissingApiKey(missing_credential_message(provider))
    return BuiltinTarget(provider, remote_model, base_url, api_key)
