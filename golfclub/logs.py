import sys

from loguru import logger

from .config import get_log_level

_configured = False


def setup_logging() -> None:
    """Replace loguru's default sink with one honouring ``LOG_LEVEL``."""
    global _configured
    if _configured:
        return
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=get_log_level(),
    )
    _configured = True
