"""CLI output styling utilities.

Consistent styling helpers for CLI output:
- Cyan bold for section headers and labels
- Green for success messages (with checkmark)
- Red for error messages (with cross)
- Dim for neutral/empty state messages
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_error",
    "style_header",
    "style_label",
    "style_phase",
    "style_success",
]

import click

from classroom_auth.reconciler.state import SessionPhase

_PHASE_COLORS = {
    SessionPhase.AUTHENTICATED: "green",
    SessionPhase.UNAUTHENTICATED: "yellow",
    SessionPhase.RECONCILING: "cyan",
    SessionPhase.INITIALIZING: "cyan",
}


def style_header(title: str) -> str:
    """Style a section header with dashes.

    Example:
        >>> click.echo(style_header("Supabase"))
        --- Supabase ---
    """
    return click.style(f"--- {title} ---", fg="cyan", bold=True)


def style_label(label: str) -> str:
    """Style a label (colon appended) in cyan bold."""
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    """Style a success message with checkmark.

    Example:
        >>> click.echo(style_success("Signed in"))
        ✓ Signed in
    """
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    """Style an error message with cross mark."""
    return click.style(f"✗ {message}", fg="red")


def style_dim(message: str) -> str:
    return click.style(message, dim=True)


def style_phase(phase: SessionPhase) -> str:
    """Style a session phase name by its meaning."""
    return click.style(phase.value, fg=_PHASE_COLORS.get(phase, "white"), bold=True)
