"""Security package."""

from controle_api.security.auth import require_manager
from controle_api.security.rate_limit import limiter

__all__ = [
    "limiter",
    "require_manager",
]
