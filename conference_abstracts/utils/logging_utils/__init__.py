"""
Category loggers with contextual fields.

    from conference_abstracts.utils.logging_utils import get_logger
    log = get_logger("submission")
    with log_context(abstract_id=abstract.id):
        log.info("abstract stored")
"""

from .manager import (
    LoggerManager,
    LoggingSettings,
    clear_log_context,
    get_log_context,
    get_logger,
    init_logger,
    log_context,
    logger_manager,
    shutdown_logger,
    update_log_context,
)

__all__ = [
    "LoggerManager",
    "LoggingSettings",
    "get_logger",
    "get_log_context",
    "update_log_context",
    "clear_log_context",
    "log_context",
    "init_logger",
    "logger_manager",
    "shutdown_logger",
]
