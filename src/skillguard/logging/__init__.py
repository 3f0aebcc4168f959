"""
Logging module - structlog over stdlib logging, stderr and JSON file pipelines.
"""

from .setup import configure_logging

__all__ = [
    "configure_logging",
]
