"""Shared utilities (file handling, logging helpers).

Import directly from submodules:
    from classroom_auth.utils.file_helpers import load_validated_json
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
