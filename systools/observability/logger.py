import structlog
import logging
import sys
from systools.config import Config

def setup_logging(level: str = None):
    """Configure structlog for JSON output on stderr (stdout carries the protocol)"""
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
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
    )

    return structlog.get_logger("systools")

logger = setup_logging()

def log_tool_execution(tool: str, status: str, start_ms: int, end_ms: int,
                       request_id=None, error: str = None):
    """Log structured tool call event"""
    logger.info(
        "tool_execution",
        tool=tool,
        request_id=request_id,
        start_ms=start_ms,
        end_ms=end_ms,
        duration_ms=end_ms - start_ms,
        status=status,
        error=error
    )
