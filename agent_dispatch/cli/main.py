"""agent-dispatch CLI.

Runs the dispatch operations in-process against the configured state
store, and serves the HTTP triggers.

Usage:
    agent-dispatch assign --account-id 7 --inbox-id 3 --contact-id 55 --conversation-id 1234
    agent-dispatch sweep
    agent-dispatch logged-users --domain example.com
    agent-dispatch serve
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console

from agent_dispatch import __version__
from agent_dispatch.cli.output import (
    format_logged_users,
    format_outcome,
    format_sweep,
)
from agent_dispatch.config import CONFIG_PATH_ENV, DispatchConfig, load_config
from agent_dispatch.errors import format_error
from agent_dispatch.services.errors import to_dispatch_error

app = typer.Typer(
    name="agent-dispatch",
    help="Capacity-aware conversation assignment for Chatwoot",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to agent-dispatch.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO level"),
):
    """agent-dispatch: route Chatwoot conversations to agents."""
    global _config_path
    _config_path = config
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _load() -> DispatchConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Config loading error ({type(e).__name__}):[/red] {e}")
        raise typer.Exit(1)


def _fail(exc: Exception) -> NoReturn:
    error = to_dispatch_error(exc)
    console.print(f"[red]{format_error(error)}[/red]")
    raise typer.Exit(1)


@app.command()
def version():
    """Show version."""
    console.print(f"[bold]agent-dispatch[/bold] v{__version__}")


@config_app.command("show")
def config_show():
    """Display the resolved configuration (secrets masked)."""
    cfg = _load()
    console.print("[bold]Host database:[/bold]")
    console.print(f"  driver: {cfg.host_db.driver}")
    console.print(f"  port: {cfg.host_db.port}")
    console.print(f"  name: {cfg.host_db.name}")
    console.print(f"  user: {cfg.host_db.user}")
    console.print(f"  password: {'***' if cfg.host_db.password else '(empty)'}")

    console.print("\n[bold]HTTP:[/bold]")
    console.print(f"  timeout: {cfg.http.timeout_seconds}s")
    console.print(f"  retries: {cfg.http.max_retries} (base {cfg.http.base_delay_seconds}s)")

    console.print("\n[bold]Assignment:[/bold]")
    console.print(f"  default_agent_id: {cfg.assignment.default_agent_id}")
    console.print(f"  default_max_assignment_limit: {cfg.assignment.default_max_assignment_limit}")
    console.print(f"  honor_host_auto_assignment: {cfg.assignment.honor_host_auto_assignment}")
    console.print(f"  lease_enabled: {cfg.assignment.lease_enabled}")

    console.print("\n[bold]Reclamation:[/bold]")
    console.print(f"  default_hours: {cfg.reclamation.default_hours}")
    console.print(f"  batch_limit: {cfg.reclamation.batch_limit}")
    console.print(f"  max_concurrency: {cfg.reclamation.max_concurrency}")


@app.command("init-db")
def init_db_command():
    """Create the state store tables."""
    from agent_dispatch.db.connection import DATABASE_URL, init_db

    init_db()
    console.print(f"[green]State store ready:[/green] {DATABASE_URL.split('@')[-1]}")


@app.command()
def assign(
    account_id: int = typer.Option(..., "--account-id", help="Chatwoot account id"),
    inbox_id: int = typer.Option(..., "--inbox-id", help="Inbox id"),
    contact_id: int = typer.Option(..., "--contact-id", help="Contact id"),
    conversation_id: int = typer.Option(
        ..., "--conversation-id", help="Conversation display id"
    ),
    system_account_id: Optional[int] = typer.Option(
        None, "--system-account-id", help="Tenant id (resolved when omitted)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Route one conversation to an agent."""
    from agent_dispatch.db.connection import get_db_context
    from agent_dispatch.services.assignment_service import (
        AssignmentRequest,
        AssignmentService,
    )

    cfg = _load()
    request = AssignmentRequest(
        account_id=account_id,
        system_account_id=system_account_id,
        contact_id=contact_id,
        inbox_id=inbox_id,
        conversation_id=conversation_id,
    )

    async def _run() -> dict:
        with get_db_context() as db:
            outcome = await AssignmentService(db, cfg).assign(request)
        return outcome.to_dict()

    try:
        result = asyncio.run(_run())
    except Exception as e:
        _fail(e)
    console.print(format_outcome(result, as_json=json_output))


@app.command()
def sweep(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Unassign conversations idle past each tenant's threshold."""
    from agent_dispatch.db.connection import SessionLocal
    from agent_dispatch.services.reclamation_service import ReclamationService

    cfg = _load()
    try:
        result = asyncio.run(ReclamationService(SessionLocal, cfg).sweep())
    except Exception as e:
        _fail(e)
    console.print(format_sweep(result.to_dict(), as_json=json_output))


@app.command("logged-users")
def logged_users(
    account_id: Optional[int] = typer.Option(None, "--account-id", help="Chatwoot account id"),
    system_account_id: Optional[int] = typer.Option(
        None, "--system-account-id", help="Tenant id (resolved when omitted)"
    ),
    domain: Optional[str] = typer.Option(None, "--domain", help="Query every account of a domain"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List online agents with their open-conversation counts."""
    from agent_dispatch.db.connection import get_db_context
    from agent_dispatch.services.presence_service import PresenceService

    cfg = _load()

    async def _run() -> dict:
        with get_db_context() as db:
            return await PresenceService(db, cfg).query(
                account_id=account_id,
                system_account_id=system_account_id,
                domain=domain,
            )

    try:
        result = asyncio.run(_run())
    except Exception as e:
        _fail(e)
    console.print(format_logged_users(result, as_json=json_output))


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Serve the HTTP triggers with uvicorn."""
    import uvicorn

    cfg = _load()
    # api.deps loads config on its own; point it at the same file.
    if _config_path:
        os.environ[CONFIG_PATH_ENV] = str(Path(_config_path).resolve())
    uvicorn.run(
        "agent_dispatch.api.main:app",
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        workers=1,
        log_level=cfg.server.log_level,
        lifespan="on",
    )


if __name__ == "__main__":
    app()
