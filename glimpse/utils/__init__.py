"""
Glimpse Utils - logging setup and ID generation.
"""

from glimpse.utils.logging import setup_logging, get_logger, log_context, log_operation, log_error
from glimpse.utils.ids import generate_id, generate_record_id, generate_store_id, current_millis

__all__ = [
    "setup_logging",
    "get_logger",
    "log_context",
    "log_operation",
    "log_error",
    "generate_id",
    "generate_record_id",
    "generate_store_id",
    "current_millis",
]
