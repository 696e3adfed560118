"""API middleware for request processing."""

from .cors import setup_cors
from .error_handling import setup_error_handlers

__all__ = ["setup_cors", "setup_error_handlers"]
