"""Config command group for classroom-auth CLI.

Provides configuration inspection subcommands.
"""

from __future__ import annotations

__all__ = ["config"]

import json
from pathlib import Path

import click

from classroom_auth.config import get_auth_log_path, get_config_path, get_system_log_path
from classroom_auth.utils.cli import load_config_or_exit

from ..styling import style_header


def _load_raw_config(config_path: Path) -> dict[str, object]:
    """Load raw JSON from config file without Pydantic defaults."""
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        result: dict[str, object] = json.load(f)
        return result


def _is_default(raw_config: dict[str, object], *keys: str) -> bool:
    """Check if a config path is missing from raw file (using default)."""
    current: object = raw_config
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            return True
        current = current[key]
    return False


def _default_marker(raw_config: dict[str, object], *keys: str) -> str:
    if _is_default(raw_config, *keys):
        return click.style(" (default)", dim=True)
    return ""


def _mask_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


@click.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Display current configuration.

    Environment overrides are applied. Values marked (default) are not in
    the config file. The anon key is masked.
    """
    config_file_path = get_config_path()
    loaded_config = load_config_or_exit()
    try:
        raw_config = _load_raw_config(config_file_path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to read {config_file_path}: {e}") from e

    if as_json:
        config_dict = loaded_config.model_dump(mode="json")
        config_dict["supabase"]["anon_key"] = _mask_key(loaded_config.supabase.anon_key)
        config_dict["_computed"] = {
            "config_file": str(config_file_path),
            "log_files": {
                "system": str(get_system_log_path(loaded_config)),
                "auth": str(get_auth_log_path(loaded_config)),
            },
        }
        click.echo(json.dumps(config_dict, indent=2))
        return

    supabase = loaded_config.supabase
    reconciler = loaded_config.reconciler

    click.echo("\nclassroom-auth configuration:\n")

    click.echo(style_header("Supabase"))
    click.echo(f"  url: {supabase.url}")
    click.echo(f"  anon_key: {_mask_key(supabase.anon_key)}")
    click.echo(f"  profile_table: {supabase.profile_table}{_default_marker(raw_config, 'supabase', 'profile_table')}")
    click.echo(
        f"  http_timeout_seconds: {supabase.http_timeout_seconds}"
        f"{_default_marker(raw_config, 'supabase', 'http_timeout_seconds')}"
    )
    click.echo()

    click.echo(style_header("Reconciler"))
    for field in (
        "profile_provisioning",
        "sign_up_policy",
        "settle_interval_seconds",
        "settle_timeout_seconds",
        "provisioning_poll_attempts",
        "provisioning_backoff_multiplier",
    ):
        click.echo(f"  {field}: {getattr(reconciler, field)}{_default_marker(raw_config, 'reconciler', field)}")
    click.echo()

    click.echo(style_header("Storage"))
    click.echo(f"  backend: {loaded_config.storage.backend}{_default_marker(raw_config, 'storage', 'backend')}")
    click.echo()

    click.echo(style_header("Logging"))
    click.echo(f"  log_dir: {loaded_config.logging.log_dir}{_default_marker(raw_config, 'logging', 'log_dir')}")
    click.echo(f"  log_level: {loaded_config.logging.log_level}{_default_marker(raw_config, 'logging', 'log_level')}")
    click.echo("  Log files (computed from log_dir):")
    click.echo(f"    system: {get_system_log_path(loaded_config)}")
    click.echo(f"    auth: {get_auth_log_path(loaded_config)}")
    click.echo()
    click.echo(f"Config file: {config_file_path}")


@config.command("path")
def config_path() -> None:
    """Show config file path."""
    path = get_config_path()
    click.echo(str(path))
    if not path.exists():
        click.echo(click.style("(file does not exist - run 'classroom-auth init')", dim=True), err=True)
