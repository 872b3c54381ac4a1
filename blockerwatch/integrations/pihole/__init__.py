"""Pi-hole Integration

Session-authenticated handler for the Pi-hole v6 REST API.
"""

from blockerwatch.integrations.pihole.client import PiHoleHandler
from blockerwatch.integrations.pihole.models import PiHoleSummary
from blockerwatch.integrations.pihole.exceptions import (
    PiHoleError,
    PiHoleConnectionError,
    PiHoleAuthenticationError,
    PiHoleAPIError,
)

__all__ = [
    "PiHoleHandler",
    "PiHoleSummary",
    "PiHoleError",
    "PiHoleConnectionError",
    "PiHoleAuthenticationError",
    "PiHoleAPIError",
]
