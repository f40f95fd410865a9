"""Main CLI entry point for classroom-auth.

Defines the CLI group and registers all subcommands.

Commands:
    auth    - Teacher authentication (signup, login, logout, status)
    config  - Configuration management (show, path)
    init    - Initialize configuration

Subcommand help:
    classroom-auth COMMAND -h    Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from classroom_auth import __version__

from .commands.auth import auth
from .commands.config import config
from .commands.init import init


class ReorderedGroup(click.Group):
    """Custom group that shows commands before custom help text."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add extra help after commands section."""
        formatter.write(
            """
Quick Start:
  classroom-auth init                          Configure the Supabase project
  classroom-auth auth signup --email you@school.org --username "Ms. Rivera"
  classroom-auth auth login --email you@school.org
  classroom-auth auth status

Non-Interactive Setup:
  classroom-auth init --non-interactive \\
    --supabase-url https://abcd.supabase.co \\
    --anon-key <anon-key> \\
    --profile-provisioning trigger

Environment Overrides:
  CLASSROOM_SUPABASE_URL, CLASSROOM_SUPABASE_ANON_KEY replace the config
  file values (the file is optional when both are set).
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """classroom-auth: Teacher sign-in for the classroom app."""
    if version:
        click.echo(f"classroom-auth {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(auth)
cli.add_command(config)
cli.add_command(init)


def main() -> None:
    """CLI entry point."""
    cli()
