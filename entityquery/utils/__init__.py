"""
Utility functions for entityquery.
"""

from .validation import (
    validate_entity_name,
    validate_key,
    validate_count,
)
from .logging import setup_logger, get_logger, configure_logging

__all__ = [
    "validate_entity_name",
    "validate_key",
    "validate_count",
    "setup_logger",
    "get_logger",
    "configure_logging",
]
