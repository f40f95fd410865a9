"""Telemetry for classroom-auth.

- system_logger: Operational logger (stderr + system.jsonl)
- auth_logger: Authentication audit trail (audit/auth.jsonl)
- models: Pydantic models for audit events
"""

from classroom_auth.telemetry.auth_logger import AuthLogger, create_auth_logger
from classroom_auth.telemetry.system_logger import configure_system_logger_file, get_system_logger

__all__ = [
    "AuthLogger",
    "configure_system_logger_file",
    "create_auth_logger",
    "get_system_logger",
]
