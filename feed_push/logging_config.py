import logging

from pythonjsonlogger import jsonlogger

from .config import Settings

LOG_FORMAT = "%(levelname)s %(name)s %(message)s"

# Client libraries that log every request at INFO
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "google", "grpc")


def build_formatter(settings: Settings) -> jsonlogger.JsonFormatter:
    """JSON formatter that stamps each record with the deployment it came from."""
    return jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"service": settings.service_name, "environment": settings.environment},
        timestamp=True,
    )


def setup_logging(settings: Settings) -> logging.Handler:
    """
    Route all logging through one JSON handler on stderr.

    The functions runtime may already have attached its own handler to the root
    logger; it is replaced so records are not emitted twice on warm starts.

    Args:
        settings: Settings providing the log level, service name and environment

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(settings))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
