import logging
import logging.config
import os


LOG_DIR = "logs"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": "INFO",
            "stream": "ext://sys.stderr",
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": os.path.join(LOG_DIR, "brickcast.log"),
            "maxBytes": 10_485_760,
            "backupCount": 5,
            "formatter": "standard",
            "level": "DEBUG",
        },
    },
    "root": {
        "level": "DEBUG",
        "handlers": ["console", "file"],
    },
}


def setup_logging(log_to_file: bool = True, verbose: bool = False):
    """Configure root logging; ``verbose`` lowers the console handler to DEBUG."""
    console = {**LOGGING_CONFIG["handlers"]["console"], "level": "DEBUG" if verbose else "INFO"}
    handlers = {**LOGGING_CONFIG["handlers"], "console": console}
    if not log_to_file:
        handlers = {"console": console}
    else:
        os.makedirs(LOG_DIR, exist_ok=True)

    config = {
        **LOGGING_CONFIG,
        "handlers": handlers,
        "root": {"level": "DEBUG", "handlers": list(handlers)},
    }
    logging.config.dictConfig(config)
