"""
Paper Trading Core - Logger Configuration
Centralized logging with loguru
"""
import sys
from pathlib import Path
from loguru import logger

from paper_core.config import settings


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Remove default handler
logger.remove()

# Console handler with custom format
logger.add(
    sys.stderr,
    colorize=True,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
)

if settings.LOG_FILE:
    log_file = Path(settings.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    
    # File handler for all logs
    logger.add(
        log_file,
        rotation="10 MB",
        retention="30 days",
        compression="gz",
        format=LOG_FORMAT,
        level="DEBUG",
    )
    
    # File handler for errors only
    logger.add(
        log_file.with_name(f"{log_file.stem}.error{log_file.suffix}"),
        rotation="10 MB",
        retention="30 days",
        compression="gz",
        format=LOG_FORMAT,
        level="ERROR",
    )


def get_logger(name: str = __name__):
    """
    Get a logger instance with the specified name.
    
    Args:
        name: Logger name (usually __name__)
        
    Returns:
        Logger instance
    """
    return logger.bind(name=name)


# Export configured logger
__all__ = ["logger", "get_logger"]
