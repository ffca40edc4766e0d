"""
Common utilities package for the Daylight capture service.

Logging setup and JSON extraction from model output. Authentication helpers
live in app.utils.auth and are imported from there directly, since they depend
on app.config, which itself uses the logger.
"""

from app.utils.json_parser import extract_json_from_llm_response, extract_json_object
from app.utils.logger import cleanup_old_logs, setup_logger

__all__ = [
    # JSON parsing utilities
    "extract_json_from_llm_response",
    "extract_json_object",
    # Logging utilities
    "setup_logger",
    "cleanup_old_logs",
]
