# tests/unit/test_orchestrator.py

from __future__ import annotations
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from modelgate.core.errors import (
    MalformedIdentifier,
    MissingApiKey,
    MissingBaseUrl,
    ProviderNotFound,
    StreamTransportFailure,
    UndeclaredToolCall,
)
from modelgate.core.models import Message, ModelConfig, ProviderConfig, ToolCallRecord, ToolDefinition
from modelgate.core.orchestrator import StreamOrchestrator


# -------- helpers --------

def text(piece):
    return {"choices": [{"index": 0, "delta": {"content": piece}}]}


def frag(index, **fn):
    return {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": index, "function": fn}]}}]}


HELLO_THEN_TOOL = [text("Hel"), text("lo"), frag(0, name="f"), frag(0, arguments="{}")]
TOOL = ToolDefinition(name="f", description="does f")


class FakeStore:
    def __init__(self, custom=None, credentials=None, base_urls=None):
        self.custom = custom or []
        self.credentials = credentials or {}
        self.base_urls = base_urls or {}

    def get_custom_providers(self):
        return list(self.custom)

    def get_credentials(self):
        return dict(self.credentials)

    def get_base_urls(self):
        return dict(self.base_urls)


class FakeClientFactory:
    """Stands in for openai.OpenAI; create() returns the scripted chunk iterator."""

    def __init__(self, chunks=(), boom_after=None):
        self.chunks = list(chunks)
        self.boom_after = boom_after
        self.client_kwargs = None
        self.requests = []

    def __call__(self, **kwargs):
        self.client_kwargs = kwargs
        factory = self

        class _Completions:
            def create(self, **request):
                factory.requests.append(request)
                return factory._stream()

        class _Chat:
            completions = _Completions()

        class _Client:
            chat = _Chat()

        return _Client()

    def _stream(self):
        for i, c in enumerate(self.chunks):
            if self.boom_after is not None and i == self.boom_after:
                raise ConnectionError("connection reset")
            yield c


class Recorder:
    def __init__(self):
        self.chunks = []
        self.completions = []

    def on_chunk(self, piece):
        assert not self.completions, "chunk after completion"
        self.chunks.append(piece)

    def on_complete(self, tool_calls):
        self.completions.append(tool_calls)


ACME = ProviderConfig(id="acme", name="Acme", base_url="https://llm.acme.dev", api_key="sk-acme")


def _run(orch, model_id, tools=None, **kwargs):
    rec = Recorder()
    orch.stream_response(
        [Message(role="user", content="hi")],
        ModelConfig(model_id=model_id, system_prompt="sys"),
        rec.on_chunk,
        rec.on_complete,
        tools,
        **kwargs,
    )
    return rec


# -------- tests --------

def test_custom_provider_end_to_end():
    factory = FakeClientFactory(HELLO_THEN_TOOL)
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=factory)
    rec = _run(orch, "custom::acme/team/gpt-x", [TOOL])

    assert rec.chunks == ["Hel", "lo"]
    assert rec.completions == [[ToolCallRecord(id="call_0", name="f", arguments="{}")]]
    assert factory.client_kwargs["base_url"] == "https://llm.acme.dev/v1"
    assert factory.client_kwargs["api_key"] == "sk-acme"
    req = factory.requests[0]
    assert req["model"] == "team/gpt-x"
    assert req["stream"] is True
    assert req["messages"][0] == {"role": "system", "content": "sys"}
    assert req["tool_choice"] == "auto"


def test_no_tool_calls_completes_with_none():
    orch = StreamOrchestrator(FakeStore(credentials={"openai": "sk"}), client_factory=FakeClientFactory([text("ok")]))
    rec = _run(orch, "openai::gpt-4o")
    assert rec.chunks == ["ok"]
    assert rec.completions == [None]


def test_empty_stream_still_completes_once():
    orch = StreamOrchestrator(FakeStore(), client_factory=FakeClientFactory([]))
    rec = _run(orch, "ollama::llama3")
    assert rec.chunks == []
    assert rec.completions == [None]


@pytest.mark.parametrize("model_id,store,exc", [
    ("custom::acme", FakeStore(custom=[ACME]), MalformedIdentifier),
    ("custom::other/m", FakeStore(custom=[ACME]), ProviderNotFound),
    ("custom::acme/m", FakeStore(custom=[ProviderConfig("acme", "Acme", "", "k")]), MissingBaseUrl),
    ("custom::acme/m", FakeStore(custom=[ProviderConfig("acme", "Acme", "http://h", "")]), MissingApiKey),
    ("openai::gpt-4o", FakeStore(), MissingApiKey),
])
def test_config_gaps_fail_before_network(model_id, store, exc):
    factory = FakeClientFactory([text("never")])
    orch = StreamOrchestrator(store, client_factory=factory)
    rec = Recorder()
    with pytest.raises(exc):
        orch.stream_response([Message(role="user", content="hi")], ModelConfig(model_id=model_id),
                             rec.on_chunk, rec.on_complete)
    assert factory.client_kwargs is None
    assert rec.chunks == [] and rec.completions == []


def test_mid_stream_failure_keeps_text_and_skips_completion():
    factory = FakeClientFactory(HELLO_THEN_TOOL, boom_after=1)
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=factory)
    rec = Recorder()
    with pytest.raises(StreamTransportFailure):
        orch.stream_response([Message(role="user", content="hi")], ModelConfig(model_id="custom::acme/m"),
                             rec.on_chunk, rec.on_complete, [TOOL])
    assert rec.chunks == ["Hel"]
    assert rec.completions == []


def test_on_chunk_errors_are_not_wrapped():
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=FakeClientFactory([text("x")]))

    def bad_chunk(_piece):
        raise ValueError("caller bug")

    with pytest.raises(ValueError):
        orch.stream_response([Message(role="user", content="hi")], ModelConfig(model_id="custom::acme/m"),
                             bad_chunk, lambda _t: None)


def test_undeclared_tool_calls_discarded_by_default():
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=FakeClientFactory(HELLO_THEN_TOOL))
    rec = _run(orch, "custom::acme/m")
    assert rec.completions == [None]
    assert "tools" not in orch.client_factory.requests[0]


def test_undeclared_tool_calls_surface_policy():
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=FakeClientFactory(HELLO_THEN_TOOL),
                              undeclared_tool_calls="surface")
    rec = _run(orch, "custom::acme/m")
    assert rec.completions == [[ToolCallRecord(id="call_0", name="f", arguments="{}")]]


def test_undeclared_tool_calls_error_policy():
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=FakeClientFactory(HELLO_THEN_TOOL),
                              undeclared_tool_calls="error")
    rec = Recorder()
    with pytest.raises(UndeclaredToolCall):
        orch.stream_response([Message(role="user", content="hi")], ModelConfig(model_id="custom::acme/m"),
                             rec.on_chunk, rec.on_complete)
    assert rec.chunks == ["Hel", "lo"]
    assert rec.completions == []


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        StreamOrchestrator(FakeStore(), undeclared_tool_calls="maybe")


class ClosableStream:
    """Mimics openai.Stream: iterable over chunks, owns a response that must be closed."""

    def __init__(self, chunks, boom_after=None):
        self.chunks = list(chunks)
        self.boom_after = boom_after
        self.closed = False

    def __iter__(self):
        for i, c in enumerate(self.chunks):
            if self.boom_after is not None and i == self.boom_after:
                raise ConnectionError("connection reset")
            yield c

    def close(self):
        self.closed = True


class ClosableStreamFactory(FakeClientFactory):
    def __init__(self, stream):
        super().__init__()
        self.stream = stream

    def _stream(self):
        return self.stream


def test_stream_closed_when_on_chunk_raises():
    stream = ClosableStream([text("a"), text("b")])
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=ClosableStreamFactory(stream))

    def bad_chunk(_piece):
        raise ValueError("caller bug")

    with pytest.raises(ValueError):
        orch.stream_response([Message(role="user", content="hi")], ModelConfig(model_id="custom::acme/m"),
                             bad_chunk, lambda _t: None)
    assert stream.closed


def test_stream_closed_after_transport_failure_and_success():
    broken = ClosableStream([text("a"), text("b")], boom_after=1)
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=ClosableStreamFactory(broken))
    with pytest.raises(StreamTransportFailure):
        _run(orch, "custom::acme/m")
    assert broken.closed

    ok = ClosableStream([text("a")])
    orch = StreamOrchestrator(FakeStore(custom=[ACME]), client_factory=ClosableStreamFactory(ok))
    rec = _run(orch, "custom::acme/m")
    assert rec.completions == [None]
    assert ok.closed
