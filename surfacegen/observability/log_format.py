"""One-line structured log output for the job client."""
import json
import logging
import sys
import time

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """Render each record as a single JSON object: ts, level, logger, event, plus any extra= fields.
    Why available: Poll ticks and preview attempts log many small events; one line each keeps them greppable."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON line formatter on the surfacegen logger (idempotent)."""
    root = logging.getLogger("surfacegen")
    root.setLevel(level.upper())
    for h in root.handlers:
        if isinstance(h.formatter, JsonLineFormatter):
            return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLineFormatter())
    root.addHandler(handler)
    root.propagate = False
