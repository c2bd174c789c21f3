import logging
import sys
import json
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

# Fields stamped onto every record logged while a webhook event is handled
_event_context: ContextVar[dict[str, Any]] = ContextVar("event_context", default={})

@contextmanager
def event_context(**fields: Any) -> Iterator[None]:
    """
    Binds ``fields`` (e.g. event_id, event_type) to every log record emitted
    inside the block, including records from nested services.
    """
    token = _event_context.set({**_event_context.get(), **fields})
    try:
        yield
    finally:
        _event_context.reset(token)

def current_event_context() -> dict[str, Any]:
    return dict(_event_context.get())

class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings after parsing the LogRecord.

    Bound event fields come first, then anything passed per call as
    ``extra={"context": {...}}``.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        log_record.update(_event_context.get())

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_record.update(context)

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        # Amounts, dates and ids from pydantic models are not all JSON native
        return json.dumps(log_record, default=str)

def configure_logging() -> None:
    """
    Sends JSON lines to stdout, where Lambda ships them to CloudWatch.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    if root_logger.handlers:
        root_logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    for noisy in ("botocore", "boto3", "urllib3", "stripe"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
