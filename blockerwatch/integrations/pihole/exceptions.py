"""Errors raised inside the Pi-hole handler.

They never escape the handler's public methods, which turn them into empty
results; only the private request helpers raise them.
"""

from typing import Optional


class PiHoleError(Exception):
    """Any failure talking to a Pi-hole"""


class PiHoleConnectionError(PiHoleError):
    """No HTTP response at all (refused, timed out, unresolvable host)"""


class PiHoleAuthenticationError(PiHoleError):
    """No session, or the session was rejected again right after re-authenticating"""


class PiHoleAPIError(PiHoleError):
    """Non-2xx status or a body that is not the expected JSON"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
