"""
Structured JSON logging for cart guardrails.
One JSON object per line, enriched with run and selector metadata.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone

# extra=... keys copied into the payload when present
FIELDS = (
    "run_id", "pipeline", "step", "page", "version", "selector", "strategy",
    "verified", "url", "error_code", "recoverable", "warnings", "items", "pages",
)


class JsonFormatter(logging.Formatter):
    """Format logs as structured JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class _RunAdapter(logging.LoggerAdapter):
    """Merge adapter defaults under per-call extra instead of replacing it."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def setup(level=logging.INFO, stream=None, **defaults) -> logging.LoggerAdapter:
    """
    Install the JSON handler on the root logger.

    Example:
        log = setup(pipeline="reconcile", step="extract")
        log.info("extracted", extra={"page": "cart", "items": 12})
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    defaults.setdefault("run_id", uuid.uuid4().hex[:12])
    return _RunAdapter(root, defaults)
