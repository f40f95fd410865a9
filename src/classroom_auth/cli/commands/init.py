"""Init command for classroom-auth CLI.

Handles interactive and non-interactive configuration initialization.
"""

from __future__ import annotations

__all__ = ["init"]

import sys
from typing import Any

import click
from pydantic import ValidationError

from classroom_auth.config import (
    DEFAULT_LOG_DIR,
    AppConfig,
    LoggingConfig,
    ReconcilerConfig,
    StorageConfig,
    SupabaseConfig,
    get_config_path,
)
from classroom_auth.constants import DEFAULT_SETTLE_INTERVAL_SECONDS

from ..styling import style_dim, style_error, style_header, style_success


def _require_flag(value: str | None, flag_name: str) -> str:
    """Validate a required CLI flag, exit with error if missing."""
    if not value:
        click.echo(style_error(f"Error: --{flag_name} is required"), err=True)
        sys.exit(1)
    return value


def _run_interactive_init(options: dict[str, Any]) -> dict[str, Any]:
    """Prompt for every setting not given on the command line."""
    click.echo("\nWelcome to classroom-auth!\n")
    click.echo(f"Config will be saved to: {get_config_path()}\n")

    click.echo(style_header("Supabase"))
    options["supabase_url"] = options["supabase_url"] or click.prompt("Project URL (https://<ref>.supabase.co)")
    options["anon_key"] = options["anon_key"] or click.prompt("Anon key", hide_input=True)

    click.echo()
    click.echo(style_header("Teacher profiles"))
    click.echo("  application = this client writes the teacher row after sign-up")
    click.echo("  trigger     = a database trigger writes it; the client waits and checks")
    options["profile_provisioning"] = click.prompt(
        "Profile provisioning",
        type=click.Choice(["application", "trigger"]),
        default=options["profile_provisioning"],
    )
    if options["profile_provisioning"] == "trigger":
        options["settle_interval"] = click.prompt(
            "Seconds to wait for the trigger",
            type=float,
            default=options["settle_interval"],
        )
    click.echo()
    click.echo(style_header("Logging"))
    options["log_dir"] = click.prompt("Log directory", default=options["log_dir"])
    options["log_level"] = click.prompt(
        "Log level",
        type=click.Choice(["DEBUG", "INFO"], case_sensitive=False),
        default=options["log_level"],
    )
    return options


def _build_config(options: dict[str, Any]) -> AppConfig:
    settle_interval = options["settle_interval"]
    return AppConfig(
        supabase=SupabaseConfig(url=options["supabase_url"].rstrip("/"), anon_key=options["anon_key"]),
        reconciler=ReconcilerConfig(
            profile_provisioning=options["profile_provisioning"],
            sign_up_policy=options["sign_up_policy"],
            settle_interval_seconds=settle_interval,
            settle_timeout_seconds=max(ReconcilerConfig().settle_timeout_seconds, settle_interval),
        ),
        storage=StorageConfig(backend=options["storage"]),
        logging=LoggingConfig(log_dir=options["log_dir"], log_level=options["log_level"].upper()),
    )


@click.command()
@click.option("--non-interactive", is_flag=True, help="Fail instead of prompting for missing values")
@click.option("--supabase-url", help="Supabase project URL")
@click.option("--anon-key", help="Supabase anon (public) API key")
@click.option(
    "--profile-provisioning",
    type=click.Choice(["application", "trigger"]),
    default="application",
    show_default=True,
    help="Who creates the teacher profile after sign-up",
)
@click.option(
    "--sign-up-policy",
    type=click.Choice(["sign_in", "require_sign_in"]),
    default="sign_in",
    show_default=True,
    help="Sign in right after sign-up, or require an explicit login",
)
@click.option(
    "--settle-interval",
    type=float,
    default=DEFAULT_SETTLE_INTERVAL_SECONDS,
    show_default=True,
    help="Seconds to wait for a trigger-created profile",
)
@click.option(
    "--storage",
    type=click.Choice(["auto", "keychain", "file", "memory"]),
    default="auto",
    show_default=True,
    help="Where the session is kept between runs",
)
@click.option("--log-dir", default=DEFAULT_LOG_DIR, show_default=True, help="Base log directory")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config without prompting")
def init(non_interactive: bool, force: bool, **options: Any) -> None:
    """Initialize classroom-auth configuration.

    Creates configuration at the OS-appropriate location:
    - macOS: ~/Library/Application Support/classroom-auth/
    - Linux: ~/.config/classroom-auth/
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\classroom-auth/

    Use --non-interactive with --supabase-url and --anon-key for scripted setup.
    """
    config_path = get_config_path()

    if config_path.exists() and not force:
        if non_interactive:
            click.echo(style_error("Error: Config already exists. Use --force to overwrite."), err=True)
            sys.exit(1)
        if not click.confirm("Config already exists. Overwrite?", default=False):
            click.echo(style_dim("Aborted."))
            sys.exit(0)

    if non_interactive:
        _require_flag(options["supabase_url"], "supabase-url")
        _require_flag(options["anon_key"], "anon-key")
    else:
        options = _run_interactive_init(options)

    try:
        app_config = _build_config(options)
    except ValidationError as e:
        click.echo(style_error(f"Error: Invalid configuration: {e}"), err=True)
        sys.exit(1)

    try:
        app_config.save_to_file(config_path)
    except OSError as e:
        click.echo(style_error(f"Error: Failed to save configuration: {e}"), err=True)
        sys.exit(1)

    click.echo("\n" + style_success(f"Configuration saved to {config_path}"))
    click.echo(f"Profile provisioning: {app_config.reconciler.profile_provisioning}")
    click.echo("\nRun 'classroom-auth auth signup' or 'classroom-auth auth login' to get started.")
