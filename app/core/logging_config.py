import os
import sys

from loguru import logger

from app.core.config import settings

_LOG_FORMAT = "{time} | {level} | {message}"
_CHANNELS = {
    "booking": "bookings.log",
    "payment": "payments.log",
    "admin": "admin.log",
}


def _channel_filter(name: str):
    return lambda record: record["extra"].get("log_type") == name


def configure_logging() -> None:
    """Install the stderr sink and, unless disabled, one rotating file per channel."""
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=_LOG_FORMAT)

    if not settings.LOG_TO_FILES:
        return

    os.makedirs(settings.LOG_DIR, exist_ok=True)

    # General application log
    logger.add(
        os.path.join(settings.LOG_DIR, "app.log"),
        rotation="1 week",
        retention="4 weeks",
        level=settings.LOG_LEVEL,
        enqueue=True,
        format=_LOG_FORMAT,
    )

    # Channel logs, selected by logger.bind(log_type=...)
    for name, filename in _CHANNELS.items():
        logger.add(
            os.path.join(settings.LOG_DIR, filename),
            rotation="1 week",
            retention="4 weeks",
            level="INFO",
            enqueue=True,
            filter=_channel_filter(name),
            format=_LOG_FORMAT,
        )

    logger.add(
        os.path.join(settings.LOG_DIR, "errors.log"),
        rotation="1 week",
        retention="8 weeks",
        level="ERROR",
        enqueue=True,
    )


def get_logger(log_type: str | None = None):
    if log_type:
        return logger.bind(log_type=log_type)
    return logger
