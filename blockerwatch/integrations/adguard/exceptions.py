"""Errors raised inside the AdGuard Home handler.

Public handler methods catch ``AdGuardError`` and return empty results.
"""

from typing import Optional


class AdGuardError(Exception):
    """Any failure talking to AdGuard Home"""


class AdGuardConnectionError(AdGuardError):
    """No HTTP response at all (refused, timed out, unresolvable host)"""


class AdGuardAuthenticationError(AdGuardError):
    """HTTP 401: the Basic credentials were refused"""


class AdGuardAPIError(AdGuardError):
    """Non-2xx status or a body that is not the expected JSON"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
