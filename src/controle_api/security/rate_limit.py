"""Rate limiting configuration for backup and provisioning endpoints."""

from ipaddress import ip_address, ip_network
from typing import Sequence

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from controle_api.config import get_settings


def _get_trusted_proxies() -> Sequence[str]:
    """Get list of trusted proxy IP ranges from configuration.

    Returns:
        List of IP addresses or CIDR ranges that are trusted proxies.
    """
    settings = get_settings()

    if settings.trusted_proxies_list:
        return settings.trusted_proxies_list

    # Default: trust localhost and private ranges for development
    if settings.environment == "development":
        return ["127.0.0.1", "::1", "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"]

    return []


def _is_trusted_proxy(client_ip: str, trusted_proxies: Sequence[str]) -> bool:
    """Check if client IP is one of the trusted proxies."""
    if not trusted_proxies:
        return False

    try:
        addr = ip_address(client_ip)
        for proxy in trusted_proxies:
            if "/" in proxy:
                if addr in ip_network(proxy, strict=False):
                    return True
            elif addr == ip_address(proxy):
                return True
    except ValueError:
        return False

    return False


def get_real_client_ip(request: Request) -> str:
    """Extract the client IP, trusting X-Forwarded-For only from trusted proxies.

    Args:
        request: The incoming request object.

    Returns:
        The client IP address.
    """
    direct_ip = get_remote_address(request)

    if _is_trusted_proxy(direct_ip, _get_trusted_proxies()):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # First IP in the chain is the client
            client_ip = forwarded_for.split(",")[0].strip()
            try:
                ip_address(client_ip)
                return client_ip
            except ValueError:
                pass

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            try:
                ip_address(real_ip)
                return real_ip
            except ValueError:
                pass

    return direct_ip


def _get_rate_limit_settings() -> dict[str, str]:
    """Get rate limit strings from configuration."""
    settings = get_settings()
    return {
        "default": f"{settings.rate_limit_default}/minute",
        "backup_export": f"{settings.rate_limit_backup_export}/minute",
        "backup_restore": f"{settings.rate_limit_backup_restore}/minute",
        "user_batch": f"{settings.rate_limit_user_batch}/minute",
        "user_create": f"{settings.rate_limit_user_create}/minute",
    }


_rate_limits = _get_rate_limit_settings()

# Fixed-window counters kept in process memory
limiter = Limiter(
    key_func=get_real_client_ip,
    default_limits=[_rate_limits["default"]],
    strategy="fixed-window",
)

API_DEFAULT_LIMIT = _rate_limits["default"]
BACKUP_EXPORT_LIMIT = _rate_limits["backup_export"]
BACKUP_RESTORE_LIMIT = _rate_limits["backup_restore"]
USER_BATCH_LIMIT = _rate_limits["user_batch"]
USER_CREATE_LIMIT = _rate_limits["user_create"]
