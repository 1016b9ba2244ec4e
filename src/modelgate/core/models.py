# src/modelgate/core/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Literal, Optional, Tuple

Role = Literal["system", "user", "assistant", "tool"]
AttachmentType = Literal["image", "pdf", "text", "webpage"]


@dataclass(frozen=True)
class ProviderConfig:
    """
    A user-registered OpenAI-compatible endpoint. Read-only for modelgate;
    the config store owns it.
    """
    id: str
    name: str
    base_url: str
    api_key: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        return bool((self.base_url or "").strip()) and bool((self.api_key or "").strip())


@dataclass(frozen=True)
class Attachment:
    type: AttachmentType
    content: str = ""                 # text body, or base64 data for image/pdf
    url: Optional[str] = None
    mime_type: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ToolCallRecord:
    id: str
    name: str
    arguments: str                    # JSON text, as sent by the model


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    attachments: Tuple[Attachment, ...] = ()
    tool_calls: Tuple[ToolCallRecord, ...] = ()
    tool_call_id: Optional[str] = None


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass(frozen=True)
class ModelConfig:
    model_id: str
    system_prompt: Optional[str] = None
    supported_attachment_types: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class CanProceedResult:
    can_proceed: bool
    reason: Optional[str] = None
