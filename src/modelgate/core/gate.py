# src/modelgate/core/gate.py
from __future__ import annotations
import logging
from typing import Iterable, Mapping, Optional

from modelgate.core.errors import MalformedIdentifier, ProviderClientError
from modelgate.core.models import CanProceedResult, ProviderConfig
from modelgate.providers.identifiers import CUSTOM_PROVIDER_KEY, decode_custom, provider_key
from modelgate.providers.registry import lookup_builtin, lookup_custom, missing_credential_message

logger = logging.getLogger(__name__)


def _blocked(model_id: str, reason: str) -> CanProceedResult:
    logger.debug("Blocked model %s: %s", model_id, reason)
    return CanProceedResult(can_proceed=False, reason=reason)


def can_proceed(
    model_id: str,
    credentials: Mapping[str, Optional[str]],
    custom_providers: Optional[Iterable[ProviderConfig]] = None,
) -> CanProceedResult:
    """
    Decide whether a request for model_id can be sent with the given config.
    Never raises: every problem comes back as a reason string for the user.
    """
    try:
        key = provider_key(model_id)
    except MalformedIdentifier:
        return _blocked(model_id, "Invalid model ID.")

    if key == CUSTOM_PROVIDER_KEY:
        try:
            ids = decode_custom(model_id)
        except MalformedIdentifier:
            return _blocked(model_id, "Invalid custom provider model ID.")
        try:
            lookup_custom(ids.provider_id, custom_providers or ())
        except ProviderClientError as e:
            return _blocked(model_id, str(e))
        return CanProceedResult(can_proceed=True)

    try:
        provider = lookup_builtin(key)
    except ProviderClientError as e:
        return _blocked(model_id, str(e))

    if provider.is_local:
        return CanProceedResult(can_proceed=True)

    if not ((credentials or {}).get(provider.credential_field) or "").strip():
        return _blocked(model_id, missing_credential_message(provider))
    return CanProceedResult(can_proceed=True)
