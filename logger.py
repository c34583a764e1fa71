import logging
import os
from logging.handlers import RotatingFileHandler
import sys
from dotenv import load_dotenv

load_dotenv()

LOG_DIR = os.getenv("UMIQ_LOG_DIR", "logs")
LOG_LEVEL = os.getenv("UMIQ_LOG_LEVEL", "INFO").upper()

# Create logs directory if it doesn't exist
os.makedirs(LOG_DIR, exist_ok=True)

def setup_logger(name='umiq', log_level=None):
    """
    Set up a logger writing to a rotating file and to stdout

    Args:
        name: Logger name, also used as the log file name
        log_level: Logging level (default: UMIQ_LOG_LEVEL or INFO)

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = getattr(logging, LOG_LEVEL, logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Reconfiguring replaces handlers instead of stacking duplicates
    if logger.handlers:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(name)s] %(message)s'
    )

    # 5MB per file, 5 backups
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, f'{name}.log'),
        maxBytes=5*1024*1024,
        backupCount=5
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(file_formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
