"""API routers package."""

from controle_api.routers import backup, users

__all__ = [
    "backup",
    "users",
]
