"""
Logging configuration utilities.
"""
import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

import structlog

from mmm_engine.config.settings import settings


def setup_logging(level: Optional[str] = None):
    """
    Configure structured logging for the engine.

    Log records go to stderr and a rotating file; stdout is left to the
    command-line JSON output.
    """
    log_level = (level or settings.logging.level).upper()
    log_dir = Path(settings.logging.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    if settings.logging.use_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / settings.logging.log_file,
        maxBytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backupCount=settings.logging.backup_count
    )
    logging.basicConfig(
        format=settings.logging.format,
        level=getattr(logging, log_level),
        handlers=[logging.StreamHandler(sys.stderr), file_handler]
    )

    # SQL statements only when echo was requested
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )
