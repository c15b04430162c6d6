"""Middleware module for the booking API."""

from .logging import RequestResponseLoggingMiddleware

__all__ = [
    "RequestResponseLoggingMiddleware"
]
