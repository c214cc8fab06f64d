import logging
import logging.handlers
import sys
from pathlib import Path

from sitesearch.config import LoggingSettings


def setup_logging(settings: LoggingSettings) -> logging.Logger:
    """
    Console logging always, plus a rotating file when a path is configured.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = logging.Formatter(settings.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.file:
        log_file = Path(settings.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in ("urllib3", "requests"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
