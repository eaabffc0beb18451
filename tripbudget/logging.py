import json
import logging
import traceback
from datetime import UTC, datetime

# Structured fields services attach through ``extra=``.
EXTRA_FIELDS = ("vacation_id", "expense_id", "currency", "rates_version", "latency_ms")


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    When ``base_currency`` is given every entry carries it, so base amounts in
    messages can be read without knowing the deployment's configuration.
    """

    def __init__(self, base_currency: str | None = None) -> None:
        super().__init__()
        self.base_currency = base_currency

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.base_currency:
            entry["base_currency"] = self.base_currency
        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(entry)


def setup_logging(level: int = logging.INFO, base_currency: str | None = None) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(base_currency))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
