"""CLI subcommands."""

__all__: list[str] = []
