import logging
import os
import sys
from typing import Optional

import structlog


def setup_logging(log_location: Optional[str] = None, level: str = "INFO") -> None:
    """Configure structlog once for the whole process.

    With a log location every event is appended to that file as a JSON line.
    Without one only warnings and errors reach stderr, since stdout carries
    protocol traffic.
    """
    if log_location:
        parent = os.path.dirname(log_location)
        if parent:
            os.makedirs(parent, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_location, mode="a", encoding="utf-8")
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.WARNING

    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

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
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
