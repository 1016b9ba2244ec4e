# src/modelgate/providers/stream_reducer.py
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional

from modelgate.core.models import ToolCallRecord

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str) -> Any:
    # SDK chunk objects and raw JSON dicts both show up here
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class _ToolCallBuffer:
    __slots__ = ("id", "name", "arguments")

    def __init__(self) -> None:
        self.id: Optional[str] = None
        self.name: List[str] = []
        self.arguments: List[str] = []


class StreamReducer:
    """
    Folds OpenAI-style chat completion chunks into:
    - text deltas, forwarded to on_chunk as soon as they arrive
    - complete tool calls, assembled per index and returned by finish()
    """

    def __init__(self, on_chunk: Callable[[str], None]):
        self._on_chunk = on_chunk
        self._tool_calls: Dict[int, _ToolCallBuffer] = {}
        self._finished = False

    def feed(self, chunk: Any) -> None:
        if self._finished:
            raise RuntimeError("StreamReducer.feed() called after finish()")

        choices = _field(chunk, "choices")
        if not choices:
            return  # usage-only or keepalive chunk
        delta = _field(choices[0], "delta")
        if delta is None:
            return

        piece = _field(delta, "content")
        if piece:
            self._on_chunk(piece)

        for frag in _field(delta, "tool_calls") or ():
            self._accumulate(frag)

    def _accumulate(self, frag: Any) -> None:
        index = _field(frag, "index")
        if index is None:
            logger.warning("Tool call fragment without index ignored")
            return
        buf = self._tool_calls.setdefault(int(index), _ToolCallBuffer())

        call_id = _field(frag, "id")
        if call_id and buf.id is None:
            buf.id = call_id

        fn = _field(frag, "function")
        name = _field(fn, "name")
        if name:
            buf.name.append(name)
        arguments = _field(fn, "arguments")
        if arguments:
            buf.arguments.append(arguments)

    def finish(self) -> List[ToolCallRecord]:
        """
        Materialise one record per observed index, in index order. Only valid
        once, after the transport stream has ended.
        """
        if self._finished:
            raise RuntimeError("StreamReducer.finish() called twice")
        self._finished = True

        records = []
        for index in sorted(self._tool_calls):
            buf = self._tool_calls[index]
            records.append(ToolCallRecord(
                id=buf.id or f"call_{index}",
                name="".join(buf.name),
                arguments="".join(buf.arguments) or "{}",
            ))
        self._tool_calls.clear()
        return records
