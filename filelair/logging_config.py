import logging

from filelair.config import LOG_LEVEL

SENSITIVE_MARKERS = ("password", "token", "hash", "secret", "authorization")
REDACTED = "[REDACTED]"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def mask_identifier(value: str | None, keep: int = 8) -> str:
    """Shorten share IDs and client addresses before they reach a log line."""
    if not value:
        return "-"
    if len(value) <= keep:
        return value
    return value[:keep] + "..."


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for name in list(vars(record)):
            if name in _RESERVED:
                continue
            if any(marker in name.lower() for marker in SENSITIVE_MARKERS):
                setattr(record, name, REDACTED)
        return True


def configure_logging(level: str = LOG_LEVEL) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.addFilter(RedactingFilter())
    root = logging.getLogger("filelair")
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False
