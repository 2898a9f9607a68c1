"""
Logging setup for production.

Levels:
- INFO: business events (share link created, invitation revoked, access granted)
- WARNING: client-side problems (denied access, bad credentials)
- ERROR: system failures, exhausted retries
- CRITICAL: invariant violations and fatal configuration errors

Outputs:
- stdout: human readable text (journald)
- LOG_DIR/*.log: NDJSON for log shipping

Personal data and secrets (emails, passwords, tokens, invite codes) never
reach the NDJSON context.
"""
import contextvars
import json
import logging
import socket
import subprocess
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from gallery_api.config import get_settings

settings = get_settings()

_SENSITIVE_FIELDS = frozenset({
    "email", "client_email", "recipient_email", "username",
    "password", "password_hash", "token", "access_token",
    "code", "invite_code", "secret",
})

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

_app_logger = logging.getLogger("gallery_api")


def _get_instance_ip() -> str:
    """INSTANCE_IP if set, otherwise the first address of `hostname -I`."""
    ip = (settings.instance_ip or "").strip()
    if ip:
        return ip
    try:
        r = subprocess.run(
            ["hostname", "-I"],
            capture_output=True,
            text=True,
            timeout=2,
        )
        if r.returncode == 0 and r.stdout:
            first = r.stdout.strip().split()
            if first:
                return first[0]
    except (OSError, subprocess.SubprocessError):
        pass
    return socket.gethostname()


INSTANCE_IP = _get_instance_ip()


def generate_request_id() -> str:
    """Short, readable request id."""
    return uuid.uuid4().hex[:12]


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current context, generating one if needed."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


class FlushingRotatingFileHandler(RotatingFileHandler):
    """Flush after every record so shippers see the newest line immediately."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }
)


class JsonLinesFormatter(logging.Formatter):
    """
    NDJSON formatter.

    Fields: ts, level, instance, rid (request id), event, msg,
    ctx (extra context minus sensitive keys), exc.
    """

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        msecs = int(record.msecs) % 1000
        payload = {
            "ts": dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{msecs:03d}Z",
            "level": record.levelname,
            "instance": INSTANCE_IP,
        }

        rid = get_request_id()
        if rid:
            payload["rid"] = rid

        if getattr(record, "event", None):
            payload["event"] = record.event

        payload["msg"] = record.getMessage()

        skip = _STANDARD_ATTRS | {"event", "instance"}
        extra_ctx = {
            k: v for k, v in record.__dict__.items()
            if k not in skip
            and k not in _SENSITIVE_FIELDS
            and v is not None
        }
        if extra_ctx:
            payload["ctx"] = extra_ctx

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """
    Configure the root logger.

    - stdout: text, INFO and up
    - stderr: text, ERROR and up
    - LOG_DIR/gallery-api.log: NDJSON, INFO and up
    - LOG_DIR/error.log: NDJSON, ERROR and up
    - noisy third-party loggers capped at WARNING
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root_logger.handlers.clear()

    text_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.INFO)
    stdout_handler.setFormatter(text_formatter)
    root_logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(text_formatter)
    root_logger.addHandler(stderr_handler)

    log_dir = (settings.log_dir or "").strip()
    if log_dir:
        json_formatter = JsonLinesFormatter()
        try:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)

            file_handler = FlushingRotatingFileHandler(
                path / "gallery-api.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(json_formatter)
            root_logger.addHandler(file_handler)

            error_handler = FlushingRotatingFileHandler(
                path / "error.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(json_formatter)
            root_logger.addHandler(error_handler)
        except OSError as e:
            root_logger.warning("File logging disabled: %s", e)

    for name in (
        "uvicorn", "uvicorn.access", "uvicorn.error",
        "httpx", "httpcore", "asyncio", "aiosqlite",
        "sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool",
        "sqlalchemy.dialects", "sqlalchemy.orm",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


def _safe_extra(context: dict) -> dict:
    # LogRecord refuses extra keys that shadow its own attributes
    return {
        (f"ctx_{k}" if k in _STANDARD_ATTRS else k): v
        for k, v in context.items()
    }


def log_with_context(
    level: int,
    message: str,
    exc_info: bool = False,
    **context: Any,
) -> None:
    """Log on the "gallery_api" logger with keyword context as structured extras."""
    _app_logger.log(level, message, extra=_safe_extra(context), exc_info=exc_info)


def log_info(message: str, **context: Any) -> None:
    log_with_context(logging.INFO, message, **context)


def log_warning(message: str, **context: Any) -> None:
    log_with_context(logging.WARNING, message, **context)


def log_error(message: str, exc_info: bool = False, **context: Any) -> None:
    log_with_context(logging.ERROR, message, exc_info=exc_info, **context)


def log_critical(message: str, exc_info: bool = False, **context: Any) -> None:
    log_with_context(logging.CRITICAL, message, exc_info=exc_info, **context)
