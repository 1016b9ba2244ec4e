# src/modelgate/providers/openai_adapter.py
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from openai import OpenAI

from modelgate.providers.registry import OPENAI_COMPATIBLE, ProviderRegistry, ResolvedProvider
from modelgate.core.errors import ProviderClientError, ProviderTransientError
from modelgate.core.models import Attachment, Message, ModelConfig, ToolCallRecord, ToolDefinition

logger = logging.getLogger(__name__)


def _classify_openai_exception(exc: Exception) -> Exception:
    """
    Convert OpenAI/client exceptions into neutral provider errors.
    Avoid hard dependency on specific SDK exception classes by inspecting attributes/message.
    """
    status = getattr(exc, "status_code", None) or getattr(exc, "http_status", None)
    msg = str(exc)

    if status is not None:
        s = int(status)
        if s == 429 or 500 <= s <= 599:
            return ProviderTransientError(msg)
        if 400 <= s < 500:
            return ProviderClientError(msg)
        return ProviderTransientError(msg) if s >= 500 else ProviderClientError(msg)

    lower = msg.lower()
    if any(k in lower for k in ("rate limit", "temporarily unavailable", "timeout", "timed out", "connection")):
        return ProviderTransientError(msg)
    if any(k in lower for k in ("invalid_request_error", "unsupported", "parameter", "authentication")):
        return ProviderClientError(msg)
    return ProviderTransientError(msg)


# ---------- conversation -> wire ----------

def _attachment_part(att: Attachment) -> Optional[Dict[str, Any]]:
    if att.type == "image":
        url = att.url or f"data:{att.mime_type or 'image/png'};base64,{att.content}"
        return {"type": "image_url", "image_url": {"url": url}}
    if att.type == "pdf":
        return {
            "type": "file",
            "file": {
                "filename": att.name or "document.pdf",
                "file_data": f"data:{att.mime_type or 'application/pdf'};base64,{att.content}",
            },
        }
    if att.type in ("text", "webpage"):
        return {"type": "text", "text": att.content or att.url or ""}
    return None


def _tool_call_to_wire(call: ToolCallRecord) -> Dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {"name": call.name, "arguments": call.arguments},
    }


def convert_message(msg: Message, supported_attachment_types: Iterable[str]) -> Dict[str, Any]:
    supported = set(supported_attachment_types)
    parts: List[Dict[str, Any]] = []
    for att in msg.attachments:
        part = _attachment_part(att) if att.type in supported else None
        if part is None:
            logger.warning("Dropping unsupported %r attachment from %s message", att.type, msg.role)
            continue
        parts.append(part)

    out: Dict[str, Any] = {"role": msg.role}
    if parts:
        out["content"] = ([{"type": "text", "text": msg.content}] if msg.content else []) + parts
    else:
        out["content"] = msg.content
    if msg.tool_calls:
        out["tool_calls"] = [_tool_call_to_wire(c) for c in msg.tool_calls]
    if msg.role == "tool" and msg.tool_call_id:
        out["tool_call_id"] = msg.tool_call_id
    return out


def convert_tool_definitions(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def build_request(
    conversation: Sequence[Message],
    model_config: ModelConfig,
    tools: Optional[Sequence[ToolDefinition]] = None,
    *,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Map a provider-agnostic conversation onto an OpenAI chat-completions
    streaming request. Structural only: nothing is summarised, trimmed or reordered.
    - model_config.system_prompt (if set) becomes the single leading system message
    - attachments whose type is not in supported_attachment_types are dropped
    - tools/tool_choice are omitted entirely when no tools are given
    """
    messages = [convert_message(m, model_config.supported_attachment_types) for m in conversation]
    if model_config.system_prompt:
        messages = [{"role": "system", "content": model_config.system_prompt}, *messages]

    request: Dict[str, Any] = {
        "model": model or model_config.model_id,
        "messages": messages,
        "stream": True,
    }
    if tools:
        request["tools"] = convert_tool_definitions(tools)
        request["tool_choice"] = "auto"
    return request


# ---------- adapter ----------

@ProviderRegistry.register(OPENAI_COMPATIBLE)
class OpenAICompatibleAdapter:
    """
    Thin adapter over the OpenAI SDK for any endpoint speaking the
    chat-completions wire (built-in providers and custom endpoints alike).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        extra_headers: Optional[Dict[str, str]] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        self.base_url = base_url
        client_kwargs: Dict[str, Any] = {"api_key": api_key, "base_url": base_url}
        if extra_headers:
            client_kwargs["default_headers"] = dict(extra_headers)
        factory = client_factory or OpenAI
        self.client = factory(**client_kwargs)

    @classmethod
    def create(
        cls,
        *,
        target: ResolvedProvider,
        extra_headers: Optional[Dict[str, str]] = None,
        base_url_override: Optional[str] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> "OpenAICompatibleAdapter":
        return cls(
            base_url=base_url_override or target.base_url,
            api_key=target.api_key,
            extra_headers=extra_headers,
            client_factory=client_factory,
        )

    def build_request(
        self,
        conversation: Sequence[Message],
        model_config: ModelConfig,
        tools: Optional[Sequence[ToolDefinition]] = None,
        *,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        return build_request(conversation, model_config, tools, model=model)

    def open_stream(self, request: Dict[str, Any]) -> Iterable[Any]:
        try:
            return self.client.chat.completions.create(**request)
        except Exception as e:
            raise _classify_openai_exception(e) from e
