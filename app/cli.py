"""
Workdeck CLI - Command line interface for sessions, connections and mentions.

Usage:
    workdeck --help                     Show all commands
    workdeck create-session EMAIL       Create a user session, print the cookie value
    workdeck connect slack -s SESSION   Connect a provider through the browser
    workdeck connections -s SESSION     Show connection status
    workdeck disconnect slack -s SESSION  Remove a stored provider token
    workdeck mentions EMAIL             Harvest Slack mentions for a user
"""

import asyncio

import typer

app = typer.Typer(
    name="workdeck",
    help="Workdeck CLI - provider connections and Slack mentions",
    no_args_is_help=True,
)


# --- Step printer helpers ---


def _print_step(step_num: int, total: int, message: str) -> None:
    """Print a step progress message."""
    typer.echo(f"\n[{step_num}/{total}] {message}...")


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


SESSION_OPTION = typer.Option(
    ...,
    "--session",
    "-s",
    envvar="WORKDECK_SESSION",
    help="Session id (the session_id cookie value)",
)
BASE_URL_OPTION = typer.Option(
    None, "--base-url", help="Backend URL (defaults to BASE_URL from settings)"
)


@app.command("create-session")
def create_session(
    email: str = typer.Argument(..., help="User email"),
    full_name: str | None = typer.Option(None, "--full-name", help="Name used for mentions"),
):
    """Create (or reuse) a user and print a new session id."""
    from sqlalchemy import select

    from app.core.database import AsyncSessionLocal
    from app.core.logging import setup_logging
    from app.core.security import get_session_expiry
    from app.models.user import Session, User

    setup_logging()

    async def run():
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(User).where(User.email == email.lower().strip()))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(email=email.lower().strip(), full_name=full_name)
                db.add(user)
                await db.flush()
                _print_success(f"Created user {user.email}")
            elif full_name:
                user.full_name = full_name

            session = Session(user_id=user.id, expires_at=get_session_expiry())
            db.add(session)
            await db.commit()
            return session.id

    session_id = asyncio.run(run())
    typer.echo(str(session_id))


@app.command()
def connect(
    provider: str = typer.Argument(..., help="Provider to connect: slack, jira or google"),
    session: str = SESSION_OPTION,
    base_url: str | None = BASE_URL_OPTION,
    no_browser: bool = typer.Option(False, "--no-browser", help="Print the URL instead"),
):
    """Connect a provider: authorize in the browser, then complete the exchange."""
    import httpx

    from app.config import get_config, get_settings
    from app.core.exceptions import WorkdeckError
    from app.core.logging import setup_logging
    from app.oauth.client import BrowserPopup, DashboardClient, complete_connect_in_browser

    setup_logging()
    config = get_config()
    backend_url = (base_url or get_settings().base_url).rstrip("/")

    async def run():
        async with httpx.AsyncClient(
            base_url=backend_url, cookies={"session_id": session}, timeout=30.0
        ) as http:
            client = DashboardClient(http)

            _print_step(1, 3, f"Starting {provider} connect")
            request = await client.start_connect(provider)

            _print_step(2, 3, "Waiting for authorization")
            if no_browser:
                typer.echo(f"  Open: {request.authorize_url}")
            popup = BrowserPopup(request.authorize_url, open_browser=not no_browser)
            outcome = await complete_connect_in_browser(
                client,
                request,
                popup,
                timeout_seconds=config.connect.timeout_seconds,
                poll_interval_seconds=config.connect.poll_interval_seconds,
            )

            _print_step(3, 3, "Result")
            return outcome

    try:
        outcome = asyncio.run(run())
    except WorkdeckError as e:
        _print_error(e.message)
        raise typer.Exit(1) from e

    if not outcome.ok:
        _print_error(f"{provider} {outcome.status.value}: {outcome.error}")
        raise typer.Exit(1)

    name = outcome.result.team_or_site_name if outcome.result else None
    _print_success(f"{provider} connected" + (f" ({name})" if name else ""))


@app.command()
def connections(
    session: str = SESSION_OPTION,
    base_url: str | None = BASE_URL_OPTION,
):
    """Show connection status for every provider."""
    import httpx

    from app.config import get_settings
    from app.core.exceptions import WorkdeckError
    from app.oauth.client import DashboardClient

    backend_url = (base_url or get_settings().base_url).rstrip("/")

    async def run():
        async with httpx.AsyncClient(
            base_url=backend_url, cookies={"session_id": session}, timeout=30.0
        ) as http:
            return await DashboardClient(http).list_connections()

    try:
        statuses = asyncio.run(run())
    except WorkdeckError as e:
        _print_error(e.message)
        raise typer.Exit(1) from e

    for status in statuses:
        if status.connected:
            _print_success(f"{status.provider}: connected ({status.team_or_site_name or '-'})")
        elif not status.configured:
            _print_warning(f"{status.provider}: not configured")
        else:
            typer.echo(f"  {status.provider}: not connected")

@app.command()
def disconnect(
    provider: str = typer.Argument(..., help="Provider to disconnect"),
    session: str = SESSION_OPTION,
    base_url: str | None = BASE_URL_OPTION,
):
    """Delete the stored token for a provider."""
    import httpx

    from app.config import get_settings
    from app.core.exceptions import WorkdeckError
    from app.oauth.client import DashboardClient

    backend_url = (base_url or get_settings().base_url).rstrip("/")

    async def run():
        async with httpx.AsyncClient(
            base_url=backend_url, cookies={"session_id": session}, timeout=30.0
        ) as http:
            await DashboardClient(http).disconnect(provider)

    try:
        asyncio.run(run())
    except WorkdeckError as e:
        _print_error(e.message)
        raise typer.Exit(1) from e

    _print_success(f"{provider} disconnected")



@app.command()
def mentions(
    email: str = typer.Argument(..., help="User email"),
):
    """Harvest Slack mentions for a user with their stored Slack token."""
    import httpx
    from sqlalchemy import select

    from app.config import get_config
    from app.core.database import AsyncSessionLocal
    from app.core.exceptions import HarvestError
    from app.core.logging import setup_logging
    from app.mentions.harvester import MentionHarvester
    from app.models.user import User
    from app.oauth import store
    from app.services.slack_service import SlackClient

    setup_logging()
    config = get_config()

    async def run():
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(User).where(User.email == email.lower().strip()))
            user = result.scalar_one_or_none()
            if user is None:
                _print_error(f"No user {email}")
                raise typer.Exit(1)

            token = await store.get_token(db, user.id, "slack")
            if token is None:
                _print_error("Slack is not connected for this user")
                raise typer.Exit(1)

            async with httpx.AsyncClient(timeout=30.0) as http:
                client = SlackClient(
                    http,
                    token.access_token,
                    history_limit=config.harvest.history_limit,
                    workspace_url=token.site_url,
                )
                harvester = MentionHarvester(
                    client, throttle_seconds=config.harvest.throttle_seconds
                )
                conversations = await client.list_conversations(
                    config.harvest.conversation_types
                )
                found = await harvester.harvest_mentions(user, conversations)
                return found, harvester.skipped

    try:
        found, skipped = asyncio.run(run())
    except HarvestError as e:
        _print_error(e.message)
        raise typer.Exit(1) from e

    for mention in found:
        typer.echo(
            f"  #{mention.conversation_name} {mention.created_at:%Y-%m-%d %H:%M} "
            f"@{mention.mentioned_by_username}: {mention.message_text}"
        )
        typer.echo(f"    {mention.permalink}")
    for error in skipped:
        _print_warning(f"Skipped {error.conversation_id}: {error.cause}")
    _print_success(f"{len(found)} mention(s)")


if __name__ == "__main__":
    app()
