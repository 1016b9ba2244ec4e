# tests/unit/test_stream_reducer.py

from __future__ import annotations
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from modelgate.core.models import ToolCallRecord
from modelgate.providers.stream_reducer import StreamReducer


def text(piece):
    return {"choices": [{"index": 0, "delta": {"content": piece}}]}


def frag(index, id=None, name=None, arguments=None):
    fn = {}
    if name is not None:
        fn["name"] = name
    if arguments is not None:
        fn["arguments"] = arguments
    tc = {"index": index, "function": fn}
    if id is not None:
        tc["id"] = id
    return {"choices": [{"index": 0, "delta": {"tool_calls": [tc]}}]}


def test_text_forwarded_in_order_without_coalescing():
    seen = []
    r = StreamReducer(seen.append)
    for c in (text("Hel"), text("lo"), text(""), text(" there")):
        r.feed(c)
    assert seen == ["Hel", "lo", " there"]
    assert r.finish() == []


def test_tool_call_fragments_concatenate_per_index():
    r = StreamReducer(lambda _p: None)
    r.feed(frag(1, id="call_b", name="lookup"))
    r.feed(frag(0, id="call_a", name="f"))
    r.feed(frag(0, arguments='{"x"'))
    r.feed(frag(1, arguments='{"q": "a"}'))
    r.feed(frag(0, arguments=": 1}"))
    assert r.finish() == [
        ToolCallRecord(id="call_a", name="f", arguments='{"x": 1}'),
        ToolCallRecord(id="call_b", name="lookup", arguments='{"q": "a"}'),
    ]


def test_only_observed_indices_emitted_with_defaults():
    r = StreamReducer(lambda _p: None)
    r.feed(frag(2, name="g"))
    assert r.finish() == [ToolCallRecord(id="call_2", name="g", arguments="{}")]


def test_chunks_without_choices_are_ignored():
    seen = []
    r = StreamReducer(seen.append)
    r.feed({"choices": [], "usage": {"total_tokens": 3}})
    r.feed({"choices": [{"index": 0, "delta": None, "finish_reason": "stop"}]})
    assert seen == []
    assert r.finish() == []


def test_sdk_style_objects_are_supported():
    class Obj:
        def __init__(self, **kw):
            self.__dict__.update(kw)

    chunk = Obj(choices=[Obj(delta=Obj(content="hi", tool_calls=[
        Obj(index=0, id="c1", function=Obj(name="f", arguments="{}")),
    ]))])
    seen = []
    r = StreamReducer(seen.append)
    r.feed(chunk)
    assert seen == ["hi"]
    assert r.finish() == [ToolCallRecord(id="c1", name="f", arguments="{}")]


def test_finish_only_once():
    r = StreamReducer(lambda _p: None)
    r.finish()
    with pytest.raises(RuntimeError):
        r.finish()
    with pytest.raises(RuntimeError):
        r.feed(text("late"))
