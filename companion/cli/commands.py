"""
CLI commands for the companion — Click-based interface.

Commands:
    companion serve         — Start the HTTP gateway
    companion token issue   — Mint a bearer token for a user
    companion token revoke  — Revoke a bearer token
    companion chat          — Interactive local chat
    companion stats         — Show database row counts
    companion version       — Show version info
"""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from companion.constants import (
    DATA_DIR,
    DEFAULT_HOST,
    DEFAULT_PORT,
    PROJECT_DISPLAY_NAME,
    PROJECT_VERSION,
)

console = Console()


@click.group()
@click.version_option(PROJECT_VERSION, prog_name=PROJECT_DISPLAY_NAME)
def cli() -> None:
    """Companion — AI companion chat service."""
    pass


# ──────────────────────── companion serve ────────────────────────


@cli.command()
@click.option("--host", default=None, help=f"Host to bind (default: {DEFAULT_HOST})")
@click.option("--port", default=None, type=int, help=f"Port to listen on (default: {DEFAULT_PORT})")
@click.option(
    "--bind-public",
    is_flag=True,
    default=False,
    help="Allow binding to 0.0.0.0",
)
def serve(host: str | None, port: int | None, bind_public: bool) -> None:
    """Start the companion HTTP gateway."""
    import uvicorn

    from companion.gateway.app import create_app
    from companion.gateway.config import load_config

    config = load_config()
    host = host or config.gateway.host
    port = port or config.gateway.port

    if host == "0.0.0.0" and not bind_public:
        console.print(
            "[bold red]ERROR:[/] Binding to 0.0.0.0 exposes the service to the network.\n"
            "Use --bind-public to override.",
            style="red",
        )
        sys.exit(1)

    console.print(
        Panel(
            f"[bold green]{PROJECT_DISPLAY_NAME} v{PROJECT_VERSION}[/]\n"
            f"Listening on [cyan]{host}:{port}[/]\n"
            f"Model: [cyan]{config.llm.provider}/{config.llm.model}[/]\n"
            f"Database: [dim]{config.database_path}[/]",
            title="Starting companion",
            border_style="green",
        )
    )

    app = create_app(config=config)
    uvicorn.run(app, host=host, port=port, log_level="info")


# ──────────────────────── companion token ────────────────────────


@cli.group()
def token() -> None:
    """Manage bearer tokens."""
    pass


@token.command("issue")
@click.argument("user_id")
def token_issue(user_id: str) -> None:
    """Mint a bearer token for USER_ID (printed once, never stored in plain text)."""
    from companion.gateway.auth import AuthManager
    from companion.gateway.config import load_config
    from companion.storage.store import Store

    config = load_config()
    store = Store(config.database_path)
    store.open()
    try:
        raw = AuthManager(token_ttl_seconds=config.auth.token_ttl_seconds).issue_token(store, user_id)
    finally:
        store.close()

    console.print(f"[green]Token for[/] [cyan]{user_id}[/]:")
    console.print(raw, soft_wrap=True)
    console.print("[dim]Store it now; it cannot be shown again.[/]")


@token.command("revoke")
@click.argument("raw_token")
def token_revoke(raw_token: str) -> None:
    """Revoke a bearer token."""
    from companion.gateway.auth import AuthManager
    from companion.gateway.config import load_config
    from companion.storage.store import Store

    config = load_config()
    store = Store(config.database_path)
    store.open()
    try:
        revoked = AuthManager().revoke_token(store, raw_token)
    finally:
        store.close()

    if revoked:
        console.print("[green]Token revoked.[/]")
    else:
        console.print("[yellow]Token not found.[/]")


# ──────────────────────── companion chat ────────────────────────


@cli.command()
@click.option("--user", "user_id", default="local", help="User id to chat as")
@click.option("--conversation", "conversation_id", default=None, help="Resume a conversation")
def chat(user_id: str, conversation_id: str | None) -> None:
    """Interactive local chat with the companion."""
    from companion.utils.logging import setup_logging

    setup_logging(level="WARNING", json_format=False)
    asyncio.run(_chat_loop(user_id, conversation_id))


async def _chat_loop(user_id: str, conversation_id: str | None) -> None:
    from companion.agent.orchestrator import TurnOrchestrator
    from companion.agent.turn import TurnRequest
    from companion.gateway.auth import AuthManager
    from companion.gateway.config import load_config
    from companion.storage.store import Store

    config = load_config()
    auth_manager = AuthManager(token_ttl_seconds=config.auth.token_ttl_seconds)
    orchestrator = TurnOrchestrator(config=config, auth_manager=auth_manager)

    store = Store(config.database_path)
    store.open()
    raw_token = None
    try:
        raw_token = auth_manager.issue_token(store, user_id)
        if conversation_id is None or store.get_conversation(conversation_id, user_id) is None:
            conversation_id = store.create_conversation(user_id)["id"]

        console.print(
            Panel(
                f"[bold]{PROJECT_DISPLAY_NAME}[/] — chatting as [cyan]{user_id}[/]\n"
                f"Conversation: [dim]{conversation_id}[/]\n"
                "Type [bold]/quit[/] to exit.",
                border_style="blue",
            )
        )

        while True:
            try:
                message = console.input("[bold cyan]you>[/] ").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not message:
                continue
            if message in ("/quit", "/exit"):
                break

            store.append_message(conversation_id, user_id, "user", message)
            result = await orchestrator.handle_turn(
                f"Bearer {raw_token}",
                TurnRequest(message=message, conversation_id=conversation_id),
            )
            if not result.ok:
                console.print(f"[red]Error:[/] {result.error}")
                continue

            store.append_message(conversation_id, user_id, "assistant", result.reply)
            console.print(Markdown(result.reply))
            if result.tools_used:
                console.print(f"[dim]tools: {', '.join(result.tools_used)}[/]")
    finally:
        if raw_token:
            auth_manager.revoke_token(store, raw_token)
        store.close()

    console.print("[dim]Bye![/]")


# ──────────────────────── companion stats ────────────────────────


@cli.command()
def stats() -> None:
    """Show row counts from the companion database."""
    from companion.gateway.config import load_config
    from companion.storage.store import Store

    config = load_config()
    store = Store(config.database_path)
    store.open()
    try:
        counts = store.get_stats()
        version = store.get_schema_version()
    finally:
        store.close()

    table = Table(title=f"{PROJECT_DISPLAY_NAME} database")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)
    console.print(f"[dim]Schema version {version} — {config.database_path}[/]")


# ──────────────────────── companion version ────────────────────────


@cli.command()
def version() -> None:
    """Show version information."""
    console.print(f"{PROJECT_DISPLAY_NAME} v{PROJECT_VERSION}")
    console.print(f"Data directory: [dim]{DATA_DIR}[/]")
