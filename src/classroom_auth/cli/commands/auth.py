"""Authentication commands for classroom-auth CLI.

Commands:
    auth signup   - Create a teacher account
    auth login    - Sign in with email and password
    auth logout   - Sign out and clear the stored session
    auth status   - Restore the stored session and show who is signed in
"""

from __future__ import annotations

__all__ = ["auth"]

import asyncio
import json as json_module
from typing import TYPE_CHECKING, Any

import click

from classroom_auth.exceptions import SessionError
from classroom_auth.identity.session_storage import create_session_storage, get_session_storage_info
from classroom_auth.utils.cli import load_config_or_exit, open_reconciler

from ..styling import style_dim, style_label, style_phase, style_success

if TYPE_CHECKING:
    from classroom_auth.config import AppConfig
    from classroom_auth.identity.models import Identity
    from classroom_auth.reconciler.state import SessionState


async def _sign_up(config: "AppConfig", email: str, password: str, username: str) -> tuple["Identity", "SessionState"]:
    async with open_reconciler(config) as reconciler:
        identity = await reconciler.sign_up(email, password, username)
        return identity, reconciler.state


async def _sign_in(config: "AppConfig", email: str, password: str) -> "Identity":
    async with open_reconciler(config) as reconciler:
        return await reconciler.sign_in(email, password)


async def _sign_out(config: "AppConfig") -> bool:
    async with open_reconciler(config) as reconciler:
        was_signed_in = reconciler.state.current_user is not None
        await reconciler.sign_out()
        return was_signed_in


async def _restore(config: "AppConfig") -> "SessionState":
    async with open_reconciler(config) as reconciler:
        return await reconciler.wait_until_loaded()


@click.group()
def auth() -> None:
    """Teacher authentication commands."""
    pass


@auth.command()
@click.option("--email", prompt=True, help="Login email")
@click.option("--username", prompt=True, help="Display name shown to students")
@click.password_option(help="Password (prompted when omitted)")
def signup(email: str, username: str, password: str) -> None:
    """Create a teacher account.

    Creates the identity and its teacher profile. Depending on the
    configured sign-up policy the new account is signed in right away or
    must sign in with 'auth login'.
    """
    config = load_config_or_exit()

    try:
        identity, state = asyncio.run(_sign_up(config, email, password, username))
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    except SessionError as e:
        raise click.ClickException(e.message) from e

    click.echo(style_success(f"Account created for {identity.email or email}"))
    if state.current_user is not None:
        click.echo("  Signed in.")
    else:
        click.echo()
        click.echo("Run 'classroom-auth auth login' to sign in.")


@auth.command()
@click.option("--email", prompt=True, help="Login email")
@click.option("--password", prompt=True, hide_input=True, help="Password (prompted when omitted)")
def login(email: str, password: str) -> None:
    """Sign in with email and password.

    The session is stored (OS keychain when available) and refreshed
    automatically, so you stay signed in across runs.
    """
    config = load_config_or_exit()

    try:
        identity = asyncio.run(_sign_in(config, email, password))
    except SessionError as e:
        raise click.ClickException(e.message) from e

    click.echo(click.style(style_success("Signed in"), bold=True))
    click.echo(f"  {style_label('Teacher')} {identity.email or identity.id}")


@auth.command()
def logout() -> None:
    """Sign out and clear the stored session."""
    config = load_config_or_exit()

    try:
        was_signed_in = asyncio.run(_sign_out(config))
    except SessionError as e:
        raise click.ClickException(e.message) from e

    if was_signed_in:
        click.echo(style_success("Signed out."))
    else:
        click.echo(style_dim("No teacher was signed in."))


@auth.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show who is signed in.

    Restores the stored session, verifies the teacher profile and prints
    the resulting session state.
    """
    config = load_config_or_exit()
    state = asyncio.run(_restore(config))
    storage_info = get_session_storage_info(create_session_storage(config.storage))

    user = state.current_user
    result: dict[str, Any] = {
        "phase": state.phase.value,
        "authenticated": state.is_authenticated,
        "storage": storage_info,
        "supabase_url": config.supabase.url,
    }
    if user is not None:
        result["user"] = {"id": user.id, "email": user.email}

    if as_json:
        click.echo(json_module.dumps(result, indent=2))
        return

    click.echo(f"{style_label('Status')} {style_phase(state.phase)}")
    if user is not None:
        click.echo(f"  Teacher: {user.email or '(no email)'}")
        click.echo(f"  Identity: {user.id}")
    else:
        click.echo(style_dim("  No teacher signed in."))
    click.echo()
    click.echo(f"{style_label('Session storage')} {storage_info['backend']}")
    click.echo(f"{style_label('Supabase')} {config.supabase.url}")
