import structlog
import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s'


def setup_logging(log_path: str, log_level: str):
    """
    Set up structured logging with rotating file handlers.

    Library modules log through the standard ``logging`` module; the
    application logs through ``structlog``, which renders JSON and hands the
    record to the same handlers.
    """
    os.makedirs(log_path, exist_ok=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = logging.getLogger()
    logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    # Pool threads log constantly; keep the main log bounded.
    log_file = os.path.join(log_path, "db2pool.log")
    handler = RotatingFileHandler(log_file, maxBytes=10*1024*1024, backupCount=5)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    error_log_file = os.path.join(log_path, "db2pool.err")
    error_handler = RotatingFileHandler(error_log_file, maxBytes=10*1024*1024, backupCount=5)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    logger.addHandler(error_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return logger
