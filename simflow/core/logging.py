import logging
import sys

from pythonjsonlogger import jsonlogger

from simflow.core.config import Settings


class _DefaultFieldsFilter(logging.Filter):
    """Records logged outside an HTTP request still carry request_id (None)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = None
        return True


def configure_logging(settings: Settings) -> None:
    """
    One JSON object per line on stdout, shared by the API process and the
    job runner. Every record is stamped with app and environment.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_DefaultFieldsFilter())
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"app": settings.app_name, "environment": settings.environment},
        )
    )
    root.addHandler(handler)

    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
