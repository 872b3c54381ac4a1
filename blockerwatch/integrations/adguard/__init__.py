"""AdGuard Home Integration

Basic-Auth handler for the AdGuard Home control API.
"""

from blockerwatch.integrations.adguard.client import AdGuardHomeHandler, basic_auth_header
from blockerwatch.integrations.adguard.models import AdGuardStats
from blockerwatch.integrations.adguard.exceptions import (
    AdGuardError,
    AdGuardConnectionError,
    AdGuardAuthenticationError,
    AdGuardAPIError,
)

__all__ = [
    "AdGuardHomeHandler",
    "basic_auth_header",
    "AdGuardStats",
    "AdGuardError",
    "AdGuardConnectionError",
    "AdGuardAuthenticationError",
    "AdGuardAPIError",
]
