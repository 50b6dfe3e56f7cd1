"""
Logging setup.

JSON lines by default so the platform log collector can index fields;
LOG_FORMAT=text gives the classic one-line format for local runs.
"""
import json
import logging
import sys
from datetime import datetime, timezone

from interest_finder.core.config import settings

_configured = False


class JsonFormatter(logging.Formatter):
    """Formats a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = None, fmt: str = None) -> None:
    """Configures the root logger once per process."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    if (fmt or settings.LOG_FORMAT).lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter('%(asctime)s | %(levelname)-8s | %(name)s | %(message)s')
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # httpx logs every request at INFO, including the access_token query param
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True
