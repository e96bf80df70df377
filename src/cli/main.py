"""Infraflow CLI.

Entry point for serving the orchestration API, chatting with the
coordinator from a terminal, and inspecting configuration and rules.

Usage:
    infraflow serve            Start the HTTP API (uvicorn)
    infraflow chat             Start a conversational REPL
    infraflow rules show       Print the active rule tables
    infraflow config show      Print the resolved configuration
"""

import asyncio
import logging
import os
from typing import Optional

import typer
import yaml
from rich.console import Console

from src.cli.output import format_lexicons, format_signal_table
from src.config import load_config
from src.orchestrator.rules import load_rules

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="infraflow",
    help="Conversational infrastructure orchestration",
    no_args_is_help=True,
)
rules_app = typer.Typer(help="Inspect heuristic rule tables")
config_app = typer.Typer(help="Configuration management")

app.add_typer(rules_app, name="rules")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to infraflow.yaml config file"
    ),
):
    """Infraflow CLI: conversational infrastructure orchestration."""
    global _config_path
    _config_path = config


def _load_config_or_exit():
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


# --- Version ---


@app.command()
def version():
    """Show Infraflow version."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version
    try:
        v = pkg_version("infraflow")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]Infraflow[/bold] v{v}")


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Start the orchestration API server."""
    import uvicorn

    cfg = _load_config_or_exit()
    final_host = host or cfg.daemon.host
    final_port = port or cfg.daemon.port

    # Propagate config path to the API lifespan so it loads the same config.
    if _config_path:
        os.environ["INFRAFLOW_CONFIG_PATH"] = str(_config_path)

    console.print(f"[bold]Starting Infraflow API on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "src.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.daemon.log_level,
        workers=1,
    )


# --- Chat ---


@app.command()
def chat(
    workspace: str = typer.Option("default", "--workspace", help="Workspace ID"),
    user: str = typer.Option("cli", "--user", help="User ID"),
):
    """Start a conversational REPL against the configured backend.

    The backend credential is read from INFRAFLOW_BACKEND_CREDENTIAL.
    """
    from src.cli.repl import run_repl
    from src.services.backend_client import HttpBackendClient
    from src.services.runtime import build_coordinator

    cfg = _load_config_or_exit()
    credential = os.environ.get("INFRAFLOW_BACKEND_CREDENTIAL", "").strip() or None

    async def _run():
        async with HttpBackendClient(cfg.backend) as client:
            coordinator = build_coordinator(cfg, client, client, client)
            try:
                await run_repl(coordinator, workspace, user, credential)
            finally:
                await coordinator.shutdown()

    asyncio.run(_run())


# --- Rules ---


@rules_app.command("show")
def rules_show(
    as_json: bool = typer.Option(False, "--json", help="Print the signal table as JSON"),
):
    """Print the active rule tables."""
    cfg = _load_config_or_exit()
    try:
        rules = load_rules(cfg.rules_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Failed to load rules:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(format_signal_table(rules, as_json=True))
        return

    console.print(f"[dim]Rules: {cfg.rules_path or 'built-in defaults'}[/dim]")
    console.print(format_signal_table(rules))
    console.print(format_lexicons(rules))
    console.print("\n[bold]Continuation prompts:[/bold]")
    for index, prompt in enumerate(rules.loop.continuation_prompts, start=1):
        console.print(f"  {index}. {prompt}")


# --- Config ---


@config_app.command("show")
def config_show():
    """Display resolved configuration (secrets masked)."""
    cfg = _load_config_or_exit()

    console.print("[bold]Daemon:[/bold]")
    console.print(f"  host: {cfg.daemon.host}")
    console.print(f"  port: {cfg.daemon.port}")
    console.print(f"  log_level: {cfg.daemon.log_level}")

    console.print("\n[bold]Backend:[/bold]")
    console.print(f"  chat_url: {cfg.backend.chat_url}")
    console.print(f"  tools_url: {cfg.backend.tools_url}")
    console.print(f"  timeout_seconds: {cfg.backend.timeout_seconds}")
    console.print(f"  api_key: {'***' if cfg.backend.api_key else '(not set)'}")

    console.print("\n[bold]Autonomous Loop:[/bold]")
    console.print(f"  max_iterations: {cfg.loop.max_iterations}")
    console.print(f"  token_budget: {cfg.loop.token_budget:,}")
    console.print(f"  history_window: {cfg.loop.history_window}")

    console.print("\n[bold]Recovery:[/bold]")
    console.print(f"  max_attempts: {cfg.recovery.max_attempts}")
    console.print(f"  backoff_seconds: {cfg.recovery.backoff_seconds}")


if __name__ == "__main__":
    app()
