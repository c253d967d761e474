import logging


class RedactionFilter(logging.Filter):
    """Mask credentials and user-supplied payloads attached to log records."""

    BLOCKED_KEYS = {"password", "access_token", "config", "field_updates"}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.BLOCKED_KEYS:
            if hasattr(record, key):
                setattr(record, key, "[REDACTED]")
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = logging.getLogger()
    if not any(isinstance(existing, RedactionFilter) for existing in root.filters):
        root.addFilter(RedactionFilter())
