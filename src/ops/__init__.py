"""
Operational helpers for running the inspection service.
"""

from .logging import LOG_FORMAT, setup_logging

__all__ = ["LOG_FORMAT", "setup_logging"]
