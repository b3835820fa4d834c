"""Audit logging for client tool calls.

Append-only JSON Lines trail of every tool request, its outcome and the
session lifecycle. Credentials passed through tool arguments are redacted
before they reach disk.
"""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Patterns for sensitive argument keys
SENSITIVE_PATTERNS = [
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"api[_-]?key", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"auth", re.IGNORECASE),
    re.compile(r"credential", re.IGNORECASE),
    re.compile(r"private[_-]?key", re.IGNORECASE),
]

REDACTED = "[REDACTED]"


def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    return any(pattern.search(key) for pattern in SENSITIVE_PATTERNS)


def sanitize_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    """Redact sensitive values, recursing into nested mappings and lists.

    Args:
        arguments: Original arguments dictionary.

    Returns:
        New dictionary with sensitive values redacted.
    """
    sanitized: dict[str, Any] = {}
    for key, value in arguments.items():
        if is_sensitive_key(str(key)):
            sanitized[key] = REDACTED
        elif isinstance(value, dict):
            sanitized[key] = sanitize_arguments(value)
        elif isinstance(value, list):
            sanitized[key] = [sanitize_arguments(v) if isinstance(v, dict) else v for v in value]
        else:
            sanitized[key] = value
    return sanitized


def _get_timestamp() -> str:
    """Get current UTC timestamp in ISO 8601 format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class AuditLogger:
    """Append-only audit logger with JSON Lines format.

    The log file is flushed after each write for durability.
    """

    def __init__(self, log_path: Path) -> None:
        """Initialize the audit logger.

        Args:
            log_path: Path to the audit log file.
        """
        self._log_path = log_path
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(log_path, "a", encoding="utf-8")  # noqa: SIM115

    @property
    def path(self) -> Path:
        """Location of the log file."""
        return self._log_path

    def _write_line(self, data: dict[str, Any]) -> None:
        """Write a JSON line to the log file and flush."""
        if self._file.closed:
            return
        self._file.write(json.dumps(data, default=str) + "\n")
        self._file.flush()

    def log_request(self, request_id: str, tool_name: str, arguments: dict[str, Any]) -> None:
        """Log an outgoing tool request.

        Args:
            request_id: Unique identifier for this call.
            tool_name: Name of the tool being invoked.
            arguments: Tool arguments (will be sanitized).
        """
        event = {
            "type": "request",
            "timestamp": _get_timestamp(),
            "request_id": request_id,
            "tool_name": tool_name,
            "arguments": sanitize_arguments(arguments),
        }
        self._write_line(event)

    def log_response(self, request_id: str, status: str, duration_ms: float) -> None:
        """Log the outcome of a tool request.

        Args:
            request_id: Request identifier to correlate with.
            status: Result status (success, tool_error or error).
            duration_ms: Round-trip time in milliseconds.
        """
        self._write_line(
            {
                "type": "response",
                "timestamp": _get_timestamp(),
                "request_id": request_id,
                "result_status": status,
                "execution_time_ms": duration_ms,
            }
        )

    def log_session_event(self, event_type: str, details: dict[str, Any]) -> None:
        """Log a session lifecycle event.

        Args:
            event_type: Type of event (connected, closed).
            details: Additional details about the event.
        """
        self._write_line(
            {
                "type": "session",
                "timestamp": _get_timestamp(),
                "event_type": event_type,
                "details": details,
            }
        )

    def close(self) -> None:
        """Close the log file."""
        if self._file and not self._file.closed:
            self._file.close()

    def __enter__(self) -> AuditLogger:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
