"""formbridge CLI - operator entry point."""

import asyncio
import json
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="formbridge",
    help="formbridge: Typeform to amoCRM bridge",
    no_args_is_help=True,
)
console = Console()

db_app = typer.Typer(help="Database commands")
oauth_app = typer.Typer(help="amoCRM OAuth commands")
submissions_app = typer.Typer(help="Typeform submission ledger")

app.add_typer(db_app, name="db")
app.add_typer(oauth_app, name="oauth")
app.add_typer(submissions_app, name="submissions")


def _mask(token: str | None) -> str:
    if not token:
        return "[dim]not set[/dim]"
    if len(token) <= 12:
        return "*" * len(token)
    return f"{token[:6]}…{token[-4:]}"


def _output_result(result: dict[str, Any]) -> None:
    console.print_json(json.dumps(result, default=str, indent=2))


# ============================================================================
# Server
# ============================================================================


@app.command("serve")
def serve(
    port: int = typer.Option(None, "--port", "-p", help="Port to run on (default: PORT)"),
    host: str = typer.Option("0.0.0.0", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the webhook server."""
    try:
        import uvicorn
    except ImportError:
        console.print("[red]Missing dependencies. Install with: pip install -e .[/red]")
        raise typer.Exit(1)

    from .config import settings

    port = port or settings.port
    console.print(f"[bold cyan]Starting formbridge at http://{host}:{port}[/bold cyan]")
    uvicorn.run("formbridge.app:app", host=host, port=port, reload=reload)


# ============================================================================
# Database
# ============================================================================


@db_app.command("init")
def db_init():
    """Create the ledger and key-value tables."""
    from .database import init_db

    asyncio.run(init_db())
    console.print("[green]Tables created.[/green]")


# ============================================================================
# OAuth
# ============================================================================


def _oauth_client():
    from .amocrm import AmoOAuthClient
    from .config import settings

    config = settings.amo_config
    if not config.oauth_configured:
        console.print(
            "[red]OAuth not configured. Set AMOCRM_CLIENT_ID, AMOCRM_CLIENT_SECRET "
            "and AMOCRM_REDIRECT_URI.[/red]"
        )
        raise typer.Exit(1)
    return AmoOAuthClient(
        base_url=config.base_url,
        client_id=config.client_id,
        client_secret=config.client_secret,
        redirect_uri=config.redirect_uri,
    )


@oauth_app.command("exchange")
def oauth_exchange(
    code: str = typer.Argument(..., help="Authorization code from the amoCRM integration page"),
):
    """Exchange an authorization code and store the token pair."""
    from .amocrm import OAuthError
    from .amocrm.storage import CredentialStore
    from .database import async_session_factory, init_db

    client = _oauth_client()

    async def _exchange():
        await init_db()
        tokens = await client.exchange_code(code)
        await CredentialStore(async_session_factory).save_tokens(tokens.access_token, tokens.refresh_token)
        return tokens

    try:
        tokens = asyncio.run(_exchange())
    except OAuthError as e:
        console.print(f"[red]Exchange failed: {e}[/red]")
        raise typer.Exit(1)

    hours = tokens.expires_in // 3600
    console.print(f"[green]Tokens stored. Access token valid for {hours}h.[/green]")


@oauth_app.command("refresh")
def oauth_refresh():
    """Force a refresh of the stored amoCRM tokens."""
    from .amocrm import AmoClient, OAuthError
    from .amocrm.storage import CredentialStore
    from .config import settings
    from .database import async_session_factory, init_db

    _oauth_client()

    async def _refresh() -> bool:
        await init_db()
        async with AmoClient(settings.amo_config, CredentialStore(async_session_factory)) as amo:
            return await amo.refresh_access_token()

    try:
        refreshed = asyncio.run(_refresh())
    except OAuthError as e:
        console.print(f"[red]Refresh failed: {e}[/red]")
        console.print("[dim]You may need to run 'formbridge oauth exchange' with a new code.[/dim]")
        raise typer.Exit(1)

    if not refreshed:
        console.print("[red]No refresh token. Run 'formbridge oauth exchange' first.[/red]")
        raise typer.Exit(1)
    console.print("[green]Token refreshed![/green]")


@oauth_app.command("status")
def oauth_status():
    """Show which amoCRM tokens are stored or configured."""
    from .amocrm import KV_ACCESS, KV_REFRESH
    from .amocrm.storage import CredentialStore
    from .config import settings
    from .database import async_session_factory, init_db

    async def _status():
        await init_db()
        return await CredentialStore(async_session_factory).get_status()

    status = asyncio.run(_status())
    config = settings.amo_config

    table = Table(title="amoCRM Tokens")
    table.add_column("Token")
    table.add_column("Stored")
    table.add_column("Updated")
    table.add_column("From env")
    for label, key, fallback in (
        ("access", KV_ACCESS, config.access_token),
        ("refresh", KV_REFRESH, config.refresh_token),
    ):
        entry = status.get(key)
        table.add_row(
            label,
            _mask(entry["value"] if entry else None),
            str(entry["updated_at"]) if entry else "-",
            _mask(fallback),
        )

    console.print(
        Panel(
            f"Account: {config.base_url}\n"
            f"Pipeline: {config.pipeline_id}\n"
            f"OAuth refresh: {'configured' if config.oauth_configured else 'not configured'}",
            title="amoCRM",
        )
    )
    console.print(table)


# ============================================================================
# Submissions
# ============================================================================


@submissions_app.command("show")
def submissions_show(
    token: str = typer.Argument(..., help="Typeform response token"),
    payload: bool = typer.Option(False, "--payload", help="Include the stored event payload"),
):
    """Show the ledger row for a response token."""
    from .database import async_session_factory
    from .sync.ledger import find_by_token

    async def _show():
        async with async_session_factory() as db:
            return await find_by_token(db, token)

    row = asyncio.run(_show())
    if row is None:
        console.print(f"[yellow]No submission for token {token}.[/yellow]")
        raise typer.Exit(1)

    result = {
        "form_id": row.form_id,
        "response_token": row.response_token,
        "landing_id": row.landing_id,
        "submitted_at": row.submitted_at,
        "last_event_id": row.last_event_id,
        "last_event_type": row.last_event_type,
        "amo_lead_id": row.amo_lead_id,
        "amo_contact_id": row.amo_contact_id,
        "updated_at": row.updated_at,
    }
    if payload:
        result["last_payload"] = row.last_payload
    _output_result(result)


@submissions_app.command("replay")
def submissions_replay(
    token: str = typer.Argument(..., help="Typeform response token"),
):
    """Re-apply the stored payload for a token, ignoring deduplication."""
    from .amocrm import AmoClient, AmoError
    from .amocrm.storage import CredentialStore
    from .config import settings
    from .database import async_session_factory
    from .schemas.typeform import parse_event
    from .sync.ledger import find_by_token
    from .sync.reconciler import Reconciler

    async def _replay():
        async with async_session_factory() as db:
            row = await find_by_token(db, token)
            if row is None or not row.last_payload:
                return None
            event = parse_event(row.last_payload)
            async with AmoClient(settings.amo_config, CredentialStore(async_session_factory)) as amo:
                return await Reconciler(db, amo, settings.field_map).run(event, force=True)

    try:
        result = asyncio.run(_replay())
    except AmoError as e:
        console.print(f"[red]Replay failed: {e}[/red]")
        raise typer.Exit(1)

    if result is None:
        console.print(f"[yellow]No stored payload for token {token}.[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Replayed: lead {result.lead_id}, contact {result.contact_id}[/green]")


if __name__ == "__main__":
    app()
