"""Logging setup for the focus timer backend.

ENV=prod → one JSON object per line; session/user/event keys found in the
           message ("session=... user=... event=...") become fields.
otherwise → plaintext.
Both pass through observability.redaction when LOG_REDACTION_ENABLED.
"""
import json
import logging
import re
import sys
from typing import Optional

from config.settings import get_settings
from observability.redaction import redact

_FIELDS = (
    ("session_id", re.compile(r"\bsession=([\w-]+)")),
    ("user_id", re.compile(r"\buser=([\w@.:-]+)")),
    ("event", re.compile(r"\bevent=(\w+)")),
    ("code", re.compile(r"\bcode=([A-Z_]+)")),
)

_QUIET_LOGGERS = ("uvicorn.access", "motor", "pymongo", "httpx", "httpcore")


def _scrub(text: str) -> str:
    return redact(text) if get_settings().LOG_REDACTION_ENABLED else text


class RedactingFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        return _scrub(super().format(record))


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": msg,
        }
        for name, pattern in _FIELDS:
            match = pattern.search(msg)
            if match and match.group(1) != "None":
                entry[name] = match.group(1)
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return _scrub(json.dumps(entry, default=str))


def setup_logging(level: Optional[str] = None) -> None:
    settings = get_settings()
    if settings.ENV == "prod":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = RedactingFormatter(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
