"""
Core utilities and configuration for stepforge-ai.

This package provides core functionality including logging configuration
and monitoring helpers.
"""

from stepforge_ai.core.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
