"""Middleware package."""

from controle_api.middleware.error_handler import (
    controle_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)

__all__ = [
    "controle_exception_handler",
    "generic_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
]
