# Observability package
from .logging import get_logger, setup_logging
from .metrics import get_metrics

__all__ = [
    "get_logger",
    "setup_logging",
    "get_metrics",
]
