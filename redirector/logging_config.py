import logging

from redirector.config import settings

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"redirector.{name}")
