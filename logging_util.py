import logging

from config import LOG_LEVEL, LOG_FORMAT

ROOT_LOGGER = "rsa_chat"


def setup_logger(name: str = ROOT_LOGGER, level: int = LOG_LEVEL) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        root.setLevel(level)
        handler = logging.StreamHandler()
        formatter = logging.Formatter(LOG_FORMAT)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    if name == ROOT_LOGGER:
        return root
    return root.getChild(name)
