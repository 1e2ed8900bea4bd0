"""
Logging configuration for the catalog backend using eliot.

Service operations run inside eliot actions; the helpers below emit the
structured messages that show up inside those actions.
"""

import eliot
import logging
import sys
from eliot import log_message, start_action, write_traceback
from eliot.stdlib import EliotHandler
from pathlib import Path

_configured = False


class HumanReadableDestination:
    """Destination that formats eliot messages as single readable lines."""

    def __init__(self, file):
        self.file = file

    def __call__(self, message):
        # Action start/finish bookkeeping is only useful in the JSON log
        if not message.get("message_type"):
            return

        msg_type = message["message_type"]

        if msg_type == "api_request":
            output = f"[API] {message.get('action', '')}"
            if message.get("track_id"):
                output += f" track={message['track_id']}"
        elif msg_type == "file_operation":
            output = f"[FILE] {message.get('operation', '')}: {message.get('filepath', '')}"
        elif msg_type == "database_operation":
            output = f"[DB] {message.get('operation', '')} {message.get('table', '')}".rstrip()
        elif msg_type == "error_occurred":
            output = f"[ERROR] {message.get('error_type', '')}: {message.get('error_message', '')}"
        elif "message" in message:
            output = str(message["message"])
        else:
            return

        if output.strip():
            self.file.write(output + "\n")
            self.file.flush()


def setup_logging(log_level: str = "INFO", log_file: str | None = None) -> None:
    """
    Set up eliot logging for the application.

    Args:
        log_level: Logging level for stdlib loggers routed into eliot
        log_file: Optional path for the raw JSON log (stdout is always used)
    """
    global _configured
    if _configured:
        return
    _configured = True

    eliot.add_destinations(HumanReadableDestination(sys.stdout))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        eliot.to_file(open(log_path, "a"))

    # Route uvicorn/starlette stdlib logging through eliot as well
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.addHandler(EliotHandler())

    log_message(message_type="logging_setup", log_level=log_level, log_file=log_file or "stdout", message="Eliot logging configured")


def log_api_request(action: str, trigger_source: str = "api", **context):
    """Log an API request with its parameters."""
    log_message(message_type="api_request", action=action, trigger_source=trigger_source, **context)


def log_database_operation(operation: str, table: str | None = None, **context):
    """Log a catalog store operation (SELECT, INSERT, UPDATE, DELETE)."""
    log_message(message_type="database_operation", operation=operation, table=table, **context)


def log_file_operation(operation: str, filepath: str, **context):
    """Log an on-disk file operation (store, remove, discard)."""
    log_message(message_type="file_operation", operation=operation, filepath=filepath, **context)


def log_error(error: Exception, **context):
    """Log an error with its traceback and context."""
    write_traceback(exc_info=(type(error), error, error.__traceback__))
    log_message(message_type="error_occurred", error_message=str(error), error_type=type(error).__name__, **context)


__all__ = [
    "log_api_request",
    "log_database_operation",
    "log_error",
    "log_file_operation",
    "setup_logging",
    "start_action",
]
