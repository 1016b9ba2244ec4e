# src/modelgate/core/orchestrator.py
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from .errors import StreamTransportFailure, UndeclaredToolCall
from .models import Message, ModelConfig, ToolDefinition
from .ports import ChatAdapter, ConfigStore, OnChunk, OnComplete
from modelgate.providers.registry import ProviderRegistry, resolve
from modelgate.providers.stream_reducer import StreamReducer

logger = logging.getLogger(__name__)

UNDECLARED_TOOL_CALL_POLICIES = ("discard", "surface", "error")


class StreamOrchestrator:
    """
    One call = one resolved provider, one request, one stream, one on_complete.

    Configuration gaps raise before anything touches the network, even when the
    caller already ran the proceed-gate. Once the stream is open, a transport
    failure raises StreamTransportFailure and on_complete is never called;
    text already passed to on_chunk stays delivered.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        client_factory: Optional[Callable[..., Any]] = None,
        undeclared_tool_calls: str = "discard",
    ):
        policy = undeclared_tool_calls.lower()
        if policy not in UNDECLARED_TOOL_CALL_POLICIES:
            raise ValueError(
                f"Unknown undeclared_tool_calls policy '{undeclared_tool_calls}'. "
                f"Allowed: {list(UNDECLARED_TOOL_CALL_POLICIES)}"
            )
        self.store = store
        self.client_factory = client_factory
        self.undeclared_tool_calls = policy

    def stream_response(
        self,
        conversation: Sequence[Message],
        model_config: ModelConfig,
        on_chunk: OnChunk,
        on_complete: OnComplete,
        tools: Optional[Sequence[ToolDefinition]] = None,
        *,
        extra_headers: Optional[Dict[str, str]] = None,
        base_url_override: Optional[str] = None,
    ) -> None:
        target = resolve(
            model_config.model_id,
            self.store.get_credentials(),
            self.store.get_custom_providers(),
            self.store.get_base_urls(),
        )

        ProviderRegistry.ensure_imports()
        Adapter = ProviderRegistry.get(target.family)
        adapter: ChatAdapter = Adapter.create(
            target=target,
            extra_headers=extra_headers,
            base_url_override=base_url_override,
            client_factory=self.client_factory,
        )

        request = adapter.build_request(conversation, model_config, tools, model=target.remote_model)
        logger.info(
            "Streaming %s via %s (%d messages, %d tools)",
            target.remote_model, target.display_name, len(request["messages"]), len(tools or ()),
        )
        stream = adapter.open_stream(request)

        reducer = StreamReducer(on_chunk)
        chunks = iter(stream)
        try:
            while True:
                # Only the transport is wrapped; errors raised by on_chunk propagate as-is.
                try:
                    chunk = next(chunks)
                except StopIteration:
                    break
                except Exception as e:
                    logger.warning("Stream from %s failed: %s", target.display_name, e)
                    raise StreamTransportFailure(f"Stream from {target.display_name} failed: {e}") from e
                reducer.feed(chunk)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        tool_calls = reducer.finish()
        if tool_calls and not tools:
            tool_calls = self._handle_undeclared(tool_calls, target.display_name)

        on_complete(tool_calls or None)

    def _handle_undeclared(self, tool_calls, display_name: str):
        names = [c.name for c in tool_calls]
        if self.undeclared_tool_calls == "error":
            raise UndeclaredToolCall(f"{display_name} returned tool calls {names} but no tools were declared")
        if self.undeclared_tool_calls == "discard":
            logger.warning("Discarding undeclared tool calls from %s: %s", display_name, names)
            return []
        return tool_calls
