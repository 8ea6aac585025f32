"""Helpdesk CLI — run the server, manage the database, poke the API.

Usage:
    helpdesk serve --reload                      # Run the API with uvicorn
    helpdesk init-db                             # Create tables (dev; prod uses alembic)
    helpdesk seed                                # Demo companies, people, tickets
    helpdesk purge-tokens                        # Delete expired/revoked session tokens
    helpdesk whoami                              # Who does HELPDESK_TOKEN belong to?
    helpdesk tickets --status open               # List tickets visible to HELPDESK_TOKEN

Database commands read HELPDESK_DATABASE_URL (or --database-url). API
commands talk to HELPDESK_API_URL with the bearer token in HELPDESK_TOKEN.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import os
import sys
from typing import Optional

import click
import httpx

from helpdesk import __version__
from helpdesk.config import Settings

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("HELPDESK_API_URL", DEFAULT_API_URL).rstrip("/")


def _token() -> str:
    token = os.environ.get("HELPDESK_TOKEN")
    if not token:
        click.secho("Error: set HELPDESK_TOKEN to an access token", fg="red", err=True)
        sys.exit(1)
    return token


def _client(token: str) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the helpdesk API."""
    return httpx.AsyncClient(
        base_url=_api_url(),
        headers={"Authorization": f"Bearer {token}"},
        timeout=30.0,
    )


def _settings(database_url: Optional[str]) -> Settings:
    return Settings(database_url=database_url) if database_url else Settings()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. CliRunner inside an async test) by
    offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _state_color(state: str) -> str:
    colors = {
        "open": "yellow",
        "pending": "cyan",
        "resolved": "green",
        "closed": "white",
    }
    return colors.get(state, "white")


def _fail_on_error(r: httpx.Response) -> None:
    """Print the API's {error, code} body and exit on non-2xx."""
    if r.is_success:
        return
    try:
        body = r.json()
        msg = f"{body.get('code', r.status_code)}: {body.get('error', r.text)}"
    except ValueError:
        msg = f"{r.status_code}: {r.text}"
    click.secho(f"Error: {msg}", fg="red", err=True)
    sys.exit(1)


database_url_option = click.option(
    "--database-url",
    envvar="HELPDESK_DATABASE_URL",
    help="SQLAlchemy async URL (default: HELPDESK_DATABASE_URL)",
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="helpdesk")
def main():
    """Helpdesk — multi-tenant ticketing API and admin tools."""


# ---------------------------------------------------------------------------
# helpdesk serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: HELPDESK_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: HELPDESK_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "helpdesk.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# helpdesk init-db / seed / purge-tokens
# ---------------------------------------------------------------------------


@main.command("init-db")
@database_url_option
def init_db(database_url: Optional[str]):
    """Create all tables directly from the models."""
    _run(_init_db_impl(_settings(database_url)))
    click.secho("Tables created.", fg="green")


async def _init_db_impl(settings: Settings):
    from helpdesk.db.engine import Database

    db = Database.from_settings(settings)
    try:
        await db.create_all()
    finally:
        await db.dispose()


@main.command()
@database_url_option
@click.option("--create-tables", is_flag=True, help="Run init-db first")
def seed(database_url: Optional[str], create_tables: bool):
    """Load demo data (safe to run repeatedly)."""
    created = _run(_seed_impl(_settings(database_url), create_tables))
    click.secho(
        f"Seeded {created['companies']} companies, {created['people']} people, "
        f"{created['tickets']} tickets.",
        fg="green",
    )
    click.echo("Demo accounts use the password 'password123'.")


async def _seed_impl(settings: Settings, create_tables: bool) -> dict:
    from helpdesk.db.engine import Database
    from helpdesk.db.seed import seed_demo_data

    db = Database.from_settings(settings)
    try:
        if create_tables:
            await db.create_all()
        async with db.session() as session:
            return await seed_demo_data(session, bcrypt_rounds=settings.bcrypt_rounds)
    finally:
        await db.dispose()


@main.command("purge-tokens")
@database_url_option
def purge_tokens(database_url: Optional[str]):
    """Delete session tokens that are expired or revoked."""
    removed = _run(_purge_tokens_impl(_settings(database_url)))
    click.echo(f"Purged {removed} session tokens.")


async def _purge_tokens_impl(settings: Settings) -> int:
    from helpdesk.auth.tokens import TokenService
    from helpdesk.db.engine import Database

    db = Database.from_settings(settings)
    try:
        async with db.session() as session:
            return await TokenService(session, settings).purge_expired()
    finally:
        await db.dispose()


# ---------------------------------------------------------------------------
# helpdesk whoami / tickets
# ---------------------------------------------------------------------------


@main.command()
def whoami():
    """Show the person behind HELPDESK_TOKEN."""
    _run(_whoami_impl(_token()))


async def _whoami_impl(token: str):
    async with _client(token) as c:
        r = await c.get("/api/auth/me")
        _fail_on_error(r)
        user = r.json()["data"]["user"]

    click.secho(user["fullName"], bold=True)
    click.echo(f"  Email:   {user['email']}")
    click.echo(f"  Role:    {user['role']}")
    click.echo(f"  Company: {user['company']['title']} (#{user['companyId']})")


@main.command()
@click.option(
    "--status", "-s", "status_filter",
    type=click.Choice(["open", "pending", "resolved", "closed"]),
    help="Filter by state",
)
@click.option("--search", "-q", help="Match subject/details")
@click.option("--page", "-p", default=1, help="Page number")
@click.option("--limit", "-l", default=20, help="Page size (max 100)")
def tickets(status_filter: Optional[str], search: Optional[str], page: int, limit: int):
    """List tickets visible to HELPDESK_TOKEN."""
    _run(_tickets_impl(_token(), status_filter, search, page, limit))


async def _tickets_impl(
    token: str, status_filter: Optional[str], search: Optional[str], page: int, limit: int
):
    params: dict = {"page": page, "limit": limit}
    if status_filter:
        params["status"] = status_filter
    if search:
        params["search"] = search

    async with _client(token) as c:
        r = await c.get("/api/tickets", params=params)
        _fail_on_error(r)
        data = r.json()["data"]

    rows = data["tickets"]
    if not rows:
        click.echo("No tickets found.")
        return

    pagination = data["pagination"]
    click.secho(
        f"Tickets (page {pagination['page']}/{max(pagination['totalPages'], 1)}, "
        f"{pagination['totalCount']} total):",
        bold=True,
    )
    click.echo()
    for row in rows:
        row["owner"] = row["person"]["fullName"]
    _print_table(rows, [
        ("ID", "id", 6),
        ("State", "state", 10),
        ("Owner", "owner", 18),
        ("Subject", "subject", 50),
    ])
    counts: dict[str, int] = {}
    for row in rows:
        counts[row["state"]] = counts.get(row["state"], 0) + 1
    click.echo()
    click.echo("  ".join(
        click.style(f"{state}: {n}", fg=_state_color(state)) for state, n in counts.items()
    ))


if __name__ == "__main__":
    main()
