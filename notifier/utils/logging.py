import json
import logging
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from loguru import logger

from notifier.config.settings import settings
from notifier.utils.context import get_request_id

DEFAULT_REQUEST_ID = "app"


class InterceptHandler(logging.Handler):
    """Forwards stdlib records (uvicorn, celery, httpx, sqlalchemy) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(request_id=get_request_id() or DEFAULT_REQUEST_ID).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


@dataclass
class LogProfile:
    """One named section of logging_config.json"""

    log_dir: str
    filename: str
    level: str
    rotation: str
    retention: str
    console_format: str
    file_format: str
    use_json_logs: bool = False

    @property
    def file_path(self) -> Path:
        return Path(self.log_dir) / f"{date.today():%Y-%m-%d}-{self.filename}"


class CustomizeLogger:
    # Libraries whose stdlib loggers are routed through loguru
    intercepted_loggers = (
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "celery",
        "celery.beat",
        "httpx",
        "sqlalchemy.engine",
    )

    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        with open(config_path) as config_file:
            sections = json.load(config_file)
        profile = LogProfile(**sections.get(environment, sections["logger"]))
        if settings.LOG_LEVEL:
            profile.level = settings.LOG_LEVEL
        return cls.customize_logging(profile)

    @classmethod
    def customize_logging(cls, profile: LogProfile):
        level = profile.level.upper()
        logger.remove()
        logger.configure(extra={"request_id": DEFAULT_REQUEST_ID})

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=profile.console_format,
            colorize=True,
        )

        file_options = dict(
            rotation=profile.rotation,
            retention=profile.retention,
            enqueue=True,
            backtrace=True,
            level=level,
        )
        # Production ships one JSON object per line for the log collector
        if profile.use_json_logs and profile.file_format == "json":
            file_options["serialize"] = True
        else:
            file_options["format"] = profile.file_format
        logger.add(str(profile.file_path), **file_options)

        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for name in cls.intercepted_loggers:
            stdlib_logger = logging.getLogger(name)
            stdlib_logger.handlers = [InterceptHandler()]
            stdlib_logger.propagate = False

        return logger


config_path = Path(__file__).resolve().parents[2] / "logging_config.json"
environment = "production" if settings.ENVIRONMENT == "production" else "logger"
custom_logger = CustomizeLogger.make_logger(config_path, environment)


def get_logger():
    """Logger bound to the current request or task run ID."""
    return custom_logger.bind(request_id=get_request_id() or DEFAULT_REQUEST_ID)
