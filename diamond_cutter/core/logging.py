"""
Logging configuration for the Diamond Cutter.
Provides structured logging for deployment and routing table operations.
"""

import logging
import sys
from typing import Any, Dict, List

import structlog
from structlog.stdlib import LoggerFactory

from diamond_cutter.core.config import is_production, settings


def setup_logging() -> None:
    """
    Configure structured logging for the upgrade session.
    Sets up different log formats for development and production environments.
    """

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _get_processor(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Set specific logger levels
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _get_processor():
    """
    Get the appropriate processor based on environment.

    Returns:
        Processor function for structlog
    """
    if is_production():
        return structlog.processors.JSONRenderer()
    else:
        return structlog.dev.ConsoleRenderer(colors=True)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


# Specialized logging functions for upgrade operations

def log_module_deployment(
    module_name: str,
    address: str = None,
    tx_hash: str = None,
    status: str = "success",
    **kwargs
) -> None:
    """
    Log a facet module deployment.

    Args:
        module_name: Module label
        address: Assigned module address
        tx_hash: Deployment transaction hash
        status: Deployment status
        **kwargs: Additional context
    """
    logger = get_logger("module.deployment")
    logger.info(
        "Module deployment",
        module_name=module_name,
        address=address,
        tx_hash=tx_hash,
        status=status,
        **kwargs
    )


def log_selector_collision(
    selector: str,
    owner: str,
    contender: str,
    **kwargs
) -> None:
    """
    Log a cross-module selector collision.

    Args:
        selector: Selector hex value
        owner: Module that keeps the selector
        contender: Module the selector is dropped from
        **kwargs: Additional context
    """
    logger = get_logger("selector.collision")
    logger.warning(
        "Selector collision",
        selector=selector,
        owner=owner,
        contender=contender,
        **kwargs
    )


def log_cut_submission(
    entries: List[Dict[str, Any]],
    tx_hash: str = None,
    status: str = "success",
    **kwargs
) -> None:
    """
    Log a diamond cut submission.

    Args:
        entries: Serialized cut entries
        tx_hash: Transaction hash
        status: Submission status
        **kwargs: Additional context
    """
    logger = get_logger("cut.submission")
    logger.info(
        "Diamond cut",
        entry_count=len(entries),
        selector_count=sum(len(entry["selectors"]) for entry in entries),
        tx_hash=tx_hash,
        status=status,
        **kwargs
    )


def log_upgrade_step(step: str, status: str, detail: str = None, **kwargs) -> None:
    """
    Log an upgrade step result.

    Args:
        step: Step name
        status: success, failed or skipped
        detail: Human readable detail
        **kwargs: Additional context
    """
    logger = get_logger("upgrade.step")
    log = logger.warning if status == "failed" else logger.info
    log("Upgrade step", step=step, status=status, detail=detail, **kwargs)


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with context.

    Args:
        error: Exception instance
        context: Additional context information
    """
    logger = get_logger("error")
    logger.error(
        "An error occurred",
        error=str(error),
        error_type=type(error).__name__,
        context=context or {},
        exc_info=True
    )
