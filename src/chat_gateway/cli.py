"""Command-line front end for the chat gateway."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from chat_gateway.config import GatewayConfig, ModelSpec, load_config
from chat_gateway.errors import ChatError
from chat_gateway.llm.client import ChatGateway
from chat_gateway.llm.transport import Transport
from chat_gateway.types import BotReply, ChatMessage, Role

console = Console()
err_console = Console(stderr=True)


def _model_spec(cfg: GatewayConfig, name: str | None) -> ModelSpec:
    name = name or cfg.model
    if name not in cfg.models:
        raise click.UsageError(
            f"Unknown model {name!r} (configured: {', '.join(sorted(cfg.models))})"
        )
    return cfg.models[name]


def _gateway(cfg: GatewayConfig, spec: ModelSpec, transport: Transport) -> ChatGateway:
    return ChatGateway.from_stored(
        spec.provider,
        spec.config_json,
        transport,
        markers=(cfg.reasoning_markers.open, cfg.reasoning_markers.close),
    )


def _usage_line(reply: BotReply) -> str:
    parts = []
    if reply.prompt_token is not None:
        parts.append(f"prompt {reply.prompt_token}")
    if reply.completion_token is not None:
        parts.append(f"completion {reply.completion_token}")
    if reply.total_token is not None:
        parts.append(f"total {reply.total_token}")
    return " | ".join(parts)


async def _run_chat(
    spec: ModelSpec,
    messages: list[ChatMessage],
    options_json: str,
    cfg: GatewayConfig,
    stream: bool,
    as_json: bool,
) -> None:
    async with Transport.from_config(cfg) as transport:
        gateway = _gateway(cfg, spec, transport)
        if not stream:
            reply = await gateway.chat(messages, options_json, cfg.global_settings)
            if as_json:
                console.print_json(json.dumps(reply.to_dict()))
                return
            if reply.reasoning:
                console.print(reply.reasoning, style="dim italic", markup=False)
            console.print(reply.message, markup=False)
            usage = _usage_line(reply)
            if usage:
                console.print(f"[dim]{usage}[/dim]")
            return

        last_usage = ""
        async for increment in gateway.chat_stream(
            messages, options_json, cfg.global_settings,
        ):
            if as_json:
                console.print(json.dumps(increment.to_dict()), soft_wrap=True)
                continue
            if increment.reasoning:
                console.print(increment.reasoning, style="dim italic", end="", markup=False)
            elif increment.message:
                console.print(increment.message, end="", markup=False)
            last_usage = _usage_line(increment) or last_usage
        if not as_json:
            console.print()
            if last_usage:
                console.print(f"[dim]{last_usage}[/dim]")


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to chat_gateway.yaml (auto-detected from CWD or ~/.config/chat-gateway/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """Chat gateway - one interface over local and OpenAI-compatible LLMs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    ctx.obj = load_config(config_path)


@main.command()
@click.argument("message")
@click.option("--model", "-m", "model_name", default=None, help="Configured model name")
@click.option("--options", "-o", "options_json", default=None,
              help="Generation options as JSON (overrides the model's defaults)")
@click.option("--system", "-s", default=None, help="System prompt")
@click.option("--no-stream", is_flag=True, help="Wait for the whole reply")
@click.option("--json", "as_json", is_flag=True, help="Print replies as JSON")
@click.pass_obj
def chat(cfg: GatewayConfig, message: str, model_name: str | None,
         options_json: str | None, system: str | None, no_stream: bool,
         as_json: bool):
    """Send MESSAGE to the configured model."""
    spec = _model_spec(cfg, model_name)
    messages = []
    if system:
        messages.append(ChatMessage(Role.SYSTEM, system))
    messages.append(ChatMessage(Role.USER, message))

    try:
        asyncio.run(_run_chat(
            spec, messages, options_json or spec.options_json,
            cfg, stream=not no_stream, as_json=as_json,
        ))
    except ChatError as e:
        err_console.print(str(e), style="red", markup=False, highlight=False)
        sys.exit(1)


@main.command()
@click.option("--model", "-m", "model_name", default=None, help="Configured model name")
@click.pass_obj
def models(cfg: GatewayConfig, model_name: str | None):
    """List the models available from the configured provider."""
    spec = _model_spec(cfg, model_name)

    async def _list():
        async with Transport.from_config(cfg) as transport:
            return await _gateway(cfg, spec, transport).list_models()

    try:
        remote = asyncio.run(_list())
    except ChatError as e:
        err_console.print(str(e), style="red", markup=False, highlight=False)
        sys.exit(1)

    table = Table(title=f"Models ({spec.provider})")
    table.add_column("Model")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for m in remote:
        table.add_row(
            m.id,
            str(m.size) if m.size is not None else "",
            m.modified_at or "",
        )
    console.print(table)


if __name__ == "__main__":
    main()
