"""Configuration and logging setup for the Salt NetAPI client."""

import logging
import os
import pathlib
import sys
from typing import TextIO

import pydantic
import structlog

from . import cherrypy

CONFIG_ENV_VAR = "SALT_NETAPI_CONFIG_PATH"
logger = structlog.get_logger(__name__)


class Settings(pydantic.BaseModel):
    """Settings for connecting to a Salt master's rest_cherrypy module."""

    address: str = pydantic.Field(description="Base URL of rest_cherrypy")
    username: str = pydantic.Field(description="eauth user name")
    password: str = pydantic.Field(description="eauth password", repr=False)
    backend: str = pydantic.Field("pam", description="eauth backend")
    skip_verify: bool = pydantic.Field(
        False,
        description="Skip TLS certificate verification",
    )
    timeout: float | None = pydantic.Field(
        None,
        description="Request timeout in seconds, unset waits forever",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")

    @pydantic.field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {value}"
            raise ValueError(msg)
        return level


def configure_logging(log_level_name: str, stream: TextIO | None = None) -> None:
    """Configure structlog for logfmt output.

    Events go to ``stream``, standard error by default, so that callers
    printing command results on standard output keep it clean.
    """
    log_level = logging.getLevelNamesMapping()[log_level_name.upper()]
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str | pathlib.Path) -> Settings:
    """Load and validate settings from a JSON file."""
    path = pathlib.Path(config_path)
    if not path.is_file():
        msg = f"Configuration file not found: {path}"
        raise FileNotFoundError(msg)

    return Settings.model_validate_json(path.read_text(encoding="utf-8"))


def create_client_from_settings(settings: Settings) -> cherrypy.Client:
    """Construct a client from validated settings."""
    client = cherrypy.Client(
        address=settings.address,
        username=settings.username,
        password=settings.password,
        backend=settings.backend,
        skip_verify=settings.skip_verify,
        timeout=settings.timeout,
    )
    logger.info(
        "Created rest_cherrypy client",
        address=settings.address,
        skip_verify=settings.skip_verify,
    )
    return client


def create_client(config_path: str | pathlib.Path | None = None) -> cherrypy.Client:
    """Create a client using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    settings = load_config(resolved_path)
    configure_logging(settings.log_level)
    return create_client_from_settings(settings)
