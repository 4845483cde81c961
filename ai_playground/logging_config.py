import logging
import logging.config

from ai_playground.config import get_settings


def setup_logging():
    """
    Configure global log format

    Every record written by the console handler passes through the
    credential redacting filter, whichever library emitted it.
    """
    settings = get_settings()
    log_level = "DEBUG" if settings.DEBUG else "INFO"
    console = ["console"]

    def quiet(level: str) -> dict:
        return {"handlers": console, "level": level, "propagate": False}

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact_credentials": {
                "()": "ai_playground.common.sanitizer.CredentialRedactingFilter",
            },
        },
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["redact_credentials"],
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": console, "level": log_level},
        "loggers": {
            "uvicorn": quiet("INFO"),
            "uvicorn.error": quiet("INFO"),
            "uvicorn.access": quiet("INFO"),
            # httpx logs every request line at INFO
            "httpx": quiet("WARNING"),
            "httpcore": quiet("WARNING"),
            "ai_playground": quiet(log_level),
        },
    }

    logging.config.dictConfig(logging_config)
