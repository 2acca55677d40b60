"""Console/file logging setup and the one-line request log format"""
import logging
import sys

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'

logger = logging.getLogger('czproxy')


def configure_logging(level='INFO', log_file=None):
    """Send czproxy logs to stdout and, optionally, to a file"""
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = False
    return logger


def log_request(mode, method, url, status="→"):
    """Consistent logging format"""
    logger.info(f"[{mode.upper():8}] {status} {method:4} {url[:80]}")
