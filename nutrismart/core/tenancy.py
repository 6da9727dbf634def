"""Tenant Identity - decide which tenant's branding a visitor sees.

All functions are pure: same input always produces same output, no side effects.
"""

from typing import Iterable, Optional

from .models import UserProfile
from .site_config import DEFAULT_TENANT_ID


# Hostnames that never carry a tenant subdomain. Entries starting with a dot
# or containing one are matched as suffixes; bare words match anywhere.
DEFAULT_PLATFORM_DOMAINS: tuple[str, ...] = (
    "localhost",
    "vercel.app",
    ".dev",
    "cloudworkstations.dev",
)


def is_platform_domain(hostname: str, platform_domains: Iterable[str]) -> bool:
    """Check whether a hostname belongs to the hosting platform or a dev tunnel.

    Args:
        hostname: Request hostname, without port
        platform_domains: Configured platform/dev-domain markers

    Returns:
        True if the hostname must not be read as a tenant subdomain
    """
    for domain in platform_domains:
        if "." in domain:
            if hostname.endswith(domain):
                return True
        elif domain in hostname:
            return True
    return False


def tenant_from_hostname(
    hostname: str,
    platform_domains: Iterable[str] = DEFAULT_PLATFORM_DOMAINS,
) -> Optional[str]:
    """Extract a tenant id from a subdomain, if the hostname has one.

    'clinic-y.example.com' -> 'clinic-y'; 'www.example.com', 'example.com'
    and platform hosts -> None.
    """
    hostname = hostname.split(":", 1)[0].strip().lower()
    parts = hostname.split(".")
    is_subdomain = len(parts) > 2 and parts[0] != "www"
    if is_subdomain and not is_platform_domain(hostname, platform_domains):
        return parts[0]
    return None


def resolve_tenant_id(
    hostname: Optional[str],
    profile: Optional[UserProfile],
    is_loading: bool,
    platform_domains: Iterable[str] = DEFAULT_PLATFORM_DOMAINS,
) -> Optional[str]:
    """Resolve the tenant whose configuration should be loaded.

    Args:
        hostname: Hostname the visitor is on (None when unknown)
        profile: Authenticated user's profile, if any
        is_loading: True while the session/profile is still being resolved
        platform_domains: Hostname markers that never carry a tenant

    Returns:
        None while loading (undecided), otherwise a tenant id
    """
    if is_loading:
        return None
    if profile is not None:
        return profile.tenant_id
    if hostname:
        tenant_id = tenant_from_hostname(hostname, platform_domains)
        if tenant_id:
            return tenant_id
    return DEFAULT_TENANT_ID
