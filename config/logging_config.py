import logging
from contextvars import ContextVar
from typing import Optional

from config.settings import get_settings

# Request id of the request currently being served, "-" outside of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s'


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    settings = get_settings()
    level = level or settings.log_level
    log_file = log_file or settings.log_file

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.addFilter(RequestIdFilter())

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    logging.getLogger('database').info(f"Logging configured at level {level}")
