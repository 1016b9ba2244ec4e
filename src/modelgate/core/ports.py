from __future__ import annotations
from typing import Protocol, Any, Callable, Dict, Iterable, List, Optional, Sequence

from .models import Message, ModelConfig, ProviderConfig, ToolCallRecord, ToolDefinition

OnChunk = Callable[[str], None]
OnComplete = Callable[[Optional[List[ToolCallRecord]]], None]


class ConfigStore(Protocol):
    """
    Read side of the settings store. Each call returns a snapshot; modelgate
    never writes through it.
    """

    def get_custom_providers(self) -> List[ProviderConfig]:
        ...

    def get_credentials(self) -> Dict[str, Optional[str]]:
        """Built-in provider key -> credential (None when not configured)."""
        ...

    def get_base_urls(self) -> Dict[str, str]:
        """Optional built-in provider key -> base URL overrides."""
        ...


class ChatAdapter(Protocol):
    """
    Interface the orchestrator uses to talk to one provider wire family.
    """

    def build_request(
        self,
        conversation: Sequence[Message],
        model_config: ModelConfig,
        tools: Optional[Sequence[ToolDefinition]] = None,
        *,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def open_stream(self, request: Dict[str, Any]) -> Iterable[Any]:
        """
        Send the request and return the lazy, single-use sequence of stream chunks.
        """
        ...
