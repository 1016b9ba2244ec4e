from __future__ import annotations
from pathlib import Path
from typing import List, Optional
import typer

from .bootstrap import build_app, configure_logging
from .core.errors import ProviderError
from .core.gate import can_proceed
from .core.models import Message, ModelConfig, ToolCallRecord
from .providers.identifiers import chat_completions_url, encode_custom

app = typer.Typer(add_completion=False, help="Gate and stream chat requests across LLM providers.")

CONFIG_OPTION = typer.Option(Path("config/default.yaml"), "--config", help="Path to the YAML config.")
LOG_LEVEL_OPTION = typer.Option(None, "--log-level", help="Override logging.level from the config.")


def _load(config: Path, log_level: Optional[str]):
    # An explicit level applies before config and secrets are read, so their logs honour it.
    if log_level:
        configure_logging(log_level)
    ctx = build_app(config)
    if not log_level:
        configure_logging(ctx["cfg"]["logging"]["level"])
    return ctx


@app.command()
def check(
    model_id: str,
    config: Path = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
):
    """Report whether MODEL_ID can be used with the current configuration."""
    store = _load(config, log_level)["store"]
    result = can_proceed(model_id, store.get_credentials(), store.get_custom_providers())
    if result.can_proceed:
        typer.echo("ok")
        return
    typer.echo(result.reason)
    raise typer.Exit(code=1)


@app.command()
def providers(
    config: Path = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
):
    """List custom providers, their model id prefix and the chat endpoint each one resolves to."""
    store = _load(config, log_level)["store"]
    custom = store.get_custom_providers()
    if not custom:
        typer.echo("No custom providers configured.")
        return
    for p in custom:
        endpoint = chat_completions_url(p.base_url) if p.base_url.strip() else "-"
        status = "ready" if p.is_usable else "incomplete"
        model_id = encode_custom(p.id, "<model>")
        typer.echo(f"{p.id}\t{p.name}\t{model_id}\t{endpoint}\t{status}")


@app.command()
def chat(
    model_id: str,
    prompt: str,
    system: Optional[str] = typer.Option(None, "--system", help="System prompt to prepend."),
    config: Path = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
):
    """Send PROMPT to MODEL_ID and stream the reply to stdout."""
    ctx = _load(config, log_level)
    store = ctx["store"]

    gate = can_proceed(model_id, store.get_credentials(), store.get_custom_providers())
    if not gate.can_proceed:
        typer.echo(gate.reason, err=True)
        raise typer.Exit(code=1)

    collected: List[ToolCallRecord] = []

    def on_chunk(piece: str) -> None:
        typer.echo(piece, nl=False)

    def on_complete(tool_calls: Optional[List[ToolCallRecord]]) -> None:
        collected.extend(tool_calls or [])

    try:
        ctx["orchestrator"].stream_response(
            [Message(role="user", content=prompt)],
            ModelConfig(model_id=model_id, system_prompt=system),
            on_chunk,
            on_complete,
        )
    except ProviderError as e:
        typer.echo(f"\n[error] {e}", err=True)
        raise typer.Exit(code=2)

    typer.echo("")
    for call in collected:
        typer.echo(f"[tool call] {call.name}({call.arguments})")
