"""CLI commands for scanchat."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from scanchat import __logo__, __version__
from scanchat.config.loader import convert_to_camel, get_config_path, load_config
from scanchat.plugins.grammar import HelpRequest, InvalidCommand
from scanchat.plugins.registry import default_registry

app = typer.Typer(
    name="scanchat",
    help=f"{__logo__} scanchat - chat pipeline with scanning plugins",
    no_args_is_help=True,
)

console = Console()

_SECRET_KEYS = {"apiKey", "apiKeys", "embeddingApiKey", "secret"}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} scanchat v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """scanchat - chat pipeline with scanning plugins."""
    pass


def _mask(data):
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if key in _SECRET_KEYS and value:
                masked[key] = ["***"] * len(value) if isinstance(value, list) else "***"
            else:
                masked[key] = _mask(value)
        return masked
    if isinstance(data, list):
        return [_mask(item) for item in data]
    return data


@app.command()
def serve(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    host: str = typer.Option(None, "--host", help="Override bind host"),
    port: int = typer.Option(None, "--port", "-p", help="Override bind port"),
):
    """Run the chat API server."""
    import uvicorn

    from scanchat.api.chat import create_chat_app

    config = load_config(config_path)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    chat_app = create_chat_app(config)
    console.print(f"[green]✓[/green] Chat API: http://{bind_host}:{bind_port}/api/chat")
    if config.api.public.enabled:
        console.print(f"[green]✓[/green] Public API: http://{bind_host}:{bind_port}/v1/chat/completions")
    uvicorn.run(chat_app, host=bind_host, port=bind_port, log_level=config.server.log_level)


@app.command()
def tools(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """List the registered scanning tools."""
    config = load_config(config_path)
    table = Table(title="Scanning Tools")
    table.add_column("Command", style="cyan", no_wrap=True)
    table.add_column("Tool")
    table.add_column("Enabled", style="green")
    table.add_column("Any Model")
    table.add_column("Summary", style="yellow")
    for spec in default_registry():
        table.add_row(
            spec.command,
            spec.title,
            "✓" if config.plugins.is_enabled(spec.id) else "✗",
            "✓" if spec.model_agnostic else "✗",
            spec.summary,
        )
    console.print(table)


@app.command()
def parse(
    line: str = typer.Argument(..., help="Slash command, e.g. '/subfinder -d example.com'"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Parse a slash command and show the backend request it maps to."""
    config = load_config(config_path)
    spec = default_registry().recognize(line)
    if spec is None:
        console.print(f"[red]Not a tool command:[/red] {line}")
        raise typer.Exit(1)

    result = spec.parse(line)
    if isinstance(result, HelpRequest):
        console.print(result.text, markup=False)
        return
    if isinstance(result, InvalidCommand):
        console.print(result.message, markup=False)
        raise typer.Exit(1)

    table = Table(title=f"{spec.title} command")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value")
    for key, value in spec.build_query(result.params):
        table.add_row(key, value)
    console.print(table)
    console.print(f"Analyze: {'yes' if result.analyze else 'no'}")
    console.print(f"URL: {spec.build_url(config.plugins.base_url, result.params)}", markup=False)


@app.command("config-show")
def config_show(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    reveal: bool = typer.Option(False, "--reveal", help="Print secrets unmasked"),
):
    """Print the effective configuration."""
    path = config_path or get_config_path()
    config = load_config(config_path)
    data = convert_to_camel(config.model_dump())
    if not reveal:
        data = _mask(data)
    console.print(f"[dim]{path}{'' if path.exists() else ' (not found, using defaults)'}[/dim]")
    console.print_json(json.dumps(data))
