# src/modelgate/providers/identifiers.py
from __future__ import annotations
import re
from dataclasses import dataclass

from modelgate.core.errors import MalformedIdentifier

CUSTOM_PROVIDER_KEY = "custom"
CUSTOM_PREFIX = CUSTOM_PROVIDER_KEY + "::"

_VERSION_SUFFIX = re.compile(r"/v\d+$", re.IGNORECASE)


@dataclass(frozen=True)
class CustomModelId:
    provider_id: str
    remote_model_id: str


def is_custom(model_id: str) -> bool:
    return model_id.startswith(CUSTOM_PREFIX)


def provider_key(model_id: str) -> str:
    """
    'anthropic::claude-3-5-sonnet' -> 'anthropic'. Structural only: the key is
    not checked against any registry here.
    """
    head, sep, rest = model_id.partition("::")
    if not sep or not head.strip() or not rest:
        raise MalformedIdentifier(f"Invalid model ID: {model_id!r}")
    return head.strip().lower()


def decode_custom(model_id: str) -> CustomModelId:
    if not is_custom(model_id):
        raise MalformedIdentifier(f"Not a custom provider model ID: {model_id!r}")
    rest = model_id[len(CUSTOM_PREFIX):]
    # Remote model names may contain '/', so only the first one separates.
    slash = rest.find("/")
    if slash < 1 or slash == len(rest) - 1:
        raise MalformedIdentifier(f"Invalid custom provider model ID: {model_id!r}")
    return CustomModelId(provider_id=rest[:slash], remote_model_id=rest[slash + 1:])


def encode_custom(provider_id: str, remote_model_id: str) -> str:
    if not provider_id or "/" in provider_id:
        raise MalformedIdentifier(f"Invalid custom provider id: {provider_id!r}")
    if not remote_model_id:
        raise MalformedIdentifier("Remote model name must not be empty")
    return f"{CUSTOM_PREFIX}{provider_id}/{remote_model_id}"


def normalize_chat_base_url(raw: str) -> str:
    """
    Trim, drop trailing slashes, and append '/v1' unless the URL already ends in
    an explicit version segment such as '/v1' or '/v4'.
    """
    url = raw.strip().rstrip("/")
    if _VERSION_SUFFIX.search(url):
        return url
    return url + "/v1"


def chat_completions_url(base_url: str) -> str:
    return normalize_chat_base_url(base_url) + "/chat/completions"
