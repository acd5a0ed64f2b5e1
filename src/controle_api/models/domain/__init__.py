"""Domain models package."""

from controle_api.models.domain.identity import IdentityUser, Manager

__all__ = [
    "IdentityUser",
    "Manager",
]
