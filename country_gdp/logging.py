import logging
import time
from logging.config import dictConfig

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from starlette.middleware.base import BaseHTTPMiddleware

from country_gdp.config import Settings

APP_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] in %(module)s: %(message)s"


def build_logging_config(config: Settings) -> dict:
    log_level = config.LOG_LEVEL.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "color": {
                "()": "colorlog.ColoredFormatter",
                "format": "%(log_color)s" + APP_FORMAT,
                "log_colors": {
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "bold_red",
                },
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "color",
                "level": config.CONSOLE_LOG_LEVEL.upper(),
            },
        },
        "loggers": {
            # Silence uvicorn noise in console
            "uvicorn": {"level": "WARNING"},
            "uvicorn.error": {"level": "WARNING"},
            "uvicorn.access": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            # country_gdp.refresh, .fetch, .image and .db inherit from here
            "country_gdp": {"level": log_level, "handlers": ["console"], "propagate": False},
            "country_gdp.request": {"level": "INFO"},
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }


def init_logging(config: Settings) -> None:
    dictConfig(build_logging_config(config))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger = logging.getLogger("country_gdp.request")
        start_time = time.time()

        response = await call_next(request)

        duration = (time.time() - start_time) * 1000
        logger.info("%s %s -> %s (%.2f ms)", request.method, request.url.path, response.status_code, duration)
        return response


SLOW_QUERY_THRESHOLD_MS = 200


def setup_query_logging(engine: Engine) -> None:
    logger = logging.getLogger("country_gdp.db")

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.time()

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_time = (time.time() - context._query_start_time) * 1000
        if total_time > SLOW_QUERY_THRESHOLD_MS:
            logger.warning("Slow Query (%.2f ms): %s", total_time, statement)
        else:
            logger.debug("Query (%.2f ms): %s", total_time, statement)
