"""Command-line interface: send one prompt and render the reply."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.markup import escape

from open_completions.config import ClientConfig, load_config
from open_completions.errors import CompletionError
from open_completions.llm.client import AsyncCompletionClient
from open_completions.types import (
    MessageEnd,
    TextDelta,
    ToolCallArgumentsDelta,
    ToolCallComplete,
    ToolCallStart,
    Usage,
)

console = Console()
err_console = Console(stderr=True)


def build_payload(
    prompt: str,
    model: str,
    system: str | None = None,
    tools: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Chat-completion request body for a single user turn."""
    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    payload: dict[str, Any] = {"model": model, "messages": messages}
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
    return payload


def load_tools(path: str | Path) -> list[dict[str, Any]]:
    """Read tool definitions from a YAML or JSON file (a list of tools)."""
    with open(path) as f:
        raw = yaml.safe_load(f) or []
    if isinstance(raw, dict):
        raw = raw.get("tools", [])
    if not isinstance(raw, list):
        raise click.BadParameter(f"{path}: expected a list of tool definitions")
    return raw


def _print_usage(usage: Usage) -> None:
    console.print(
        f"[dim]tokens: prompt {usage.prompt_tokens}, "
        f"completion {usage.completion_tokens}, total {usage.total_tokens}[/dim]"
    )


def _print_tool_call(call_id: str, name: str, arguments: Any) -> None:
    args = escape(json.dumps(arguments, ensure_ascii=False))
    console.print(
        f"[bold cyan]{escape(name)}[/bold cyan]({args}) [dim]{escape(call_id)}[/dim]"
    )


async def _run_stream(
    config: ClientConfig, payload: dict[str, Any], show_tools: bool,
) -> None:
    async with AsyncCompletionClient(config) as client:
        async for event in client.chat_stream(payload):
            if isinstance(event, TextDelta):
                console.print(event.text, end="", markup=False, highlight=False)
            elif isinstance(event, ToolCallStart):
                if show_tools:
                    console.print(
                        f"\n[cyan]tool call {event.index}[/cyan] "
                        f"id={escape(str(event.id))} name={escape(str(event.name))}"
                    )
            elif isinstance(event, ToolCallArgumentsDelta):
                if show_tools:
                    console.print(
                        event.fragment, end="", style="dim",
                        markup=False, highlight=False,
                    )
            elif isinstance(event, ToolCallComplete):
                console.print()
                _print_tool_call(event.id, event.name, event.arguments)
            elif isinstance(event, Usage):
                console.print()
                _print_usage(event)
            elif isinstance(event, MessageEnd):
                console.print()


async def _run_once(config: ClientConfig, payload: dict[str, Any]) -> None:
    async with AsyncCompletionClient(config) as client:
        response = await client.chat(payload)

    if response.content:
        console.print(response.content, markup=False, highlight=False)
    for tc in response.tool_calls:
        _print_tool_call(tc.id, tc.name, tc.arguments)
    if response.usage is not None:
        _print_usage(response.usage)
    console.print(f"[dim]{response.latency_ms:.0f}ms[/dim]")


@click.command()
@click.argument("prompt")
@click.option("--config", "-c", "config_path", default=None,
              help="Path to open_completions.yaml (auto-detected from CWD or ~/.config/open-completions/)")
@click.option("--model", "-m", default=None, help="Model name (overrides config)")
@click.option("--system", "-s", default=None, help="System prompt")
@click.option("--tools", "-t", "tools_path", default=None,
              type=click.Path(exists=True, dir_okay=False),
              help="YAML/JSON file with tool definitions to offer the model")
@click.option("--no-stream", is_flag=True, help="Wait for the full response")
@click.option("--show-tools", is_flag=True, help="Show tool-call fragments as they stream")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(prompt: str, config_path: str | None, model: str | None,
         system: str | None, tools_path: str | None, no_stream: bool,
         show_tools: bool, verbose: bool):
    """Send PROMPT to an OpenAI-compatible endpoint and print the reply."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    config = load_config(config_path)
    if model:
        config.model = model
    if not config.api_key:
        err_console.print(
            "[yellow]No API key configured (set OPENAI_API_KEY or api_key in config)[/yellow]"
        )

    tools = load_tools(tools_path) if tools_path else None
    payload = build_payload(prompt, config.model, system, tools)

    try:
        if no_stream:
            asyncio.run(_run_once(config, payload))
        else:
            asyncio.run(_run_stream(config, payload, show_tools))
    except CompletionError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("[dim]Interrupted[/dim]")
        sys.exit(130)


if __name__ == "__main__":
    main()
