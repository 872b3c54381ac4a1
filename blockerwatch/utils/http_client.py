"""Small synchronous HTTP wrapper shared by the appliance handlers.

Status codes are reported, not raised: callers decide what a non-2xx means.
Only transport failures (refused connection, timeout, DNS failure) raise.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_REQUEST_TIMEOUT = 10.0

# Response bodies longer than this are truncated in debug logs
LOG_BODY_LIMIT = 1000

REDACTED = "***"
_PASSWORD_PATTERN = re.compile(r'("password"\s*:\s*)"(?:[^"\\]|\\.)*"')

BODY_METHODS = ("POST", "PUT", "PATCH")


class TransportError(Exception):
    """Request never produced an HTTP response"""
    pass


def redact(value: Any) -> Any:
    """Mask every key literally named "password", at any depth"""
    if isinstance(value, dict):
        return {
            k: (REDACTED if k == "password" else redact(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def redact_text(body: str) -> str:
    """Redact a serialized body, falling back to a regex for non-JSON text"""
    try:
        return json.dumps(redact(json.loads(body)))
    except (ValueError, TypeError):
        return _PASSWORD_PATTERN.sub(rf'\1"{REDACTED}"', body)


@dataclass(frozen=True)
class HttpResponse:
    """Status, headers and body of a completed request"""
    method: str
    url: str
    status_code: int
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code in (401, 403)

    def json(self) -> Optional[Any]:
        """Decoded body, or None when empty or malformed"""
        if not self.text or not self.text.strip():
            return None
        try:
            return json.loads(self.text)
        except ValueError:
            return None


class HttpClient:
    """httpx-backed client with default timeouts and redacted logging"""

    def __init__(
        self,
        connect_timeout: Optional[float] = None,
        request_timeout: Optional[float] = None,
        verify_ssl: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.connect_timeout = connect_timeout or DEFAULT_CONNECT_TIMEOUT
        self.request_timeout = request_timeout or DEFAULT_REQUEST_TIMEOUT
        self._client = httpx.Client(
            verify=verify_ssl,
            timeout=self._timeout(self.request_timeout),
            follow_redirects=True,
            transport=transport,
        )

    def _timeout(self, request_timeout: float) -> httpx.Timeout:
        return httpx.Timeout(request_timeout, connect=self.connect_timeout)

    def send(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """Issue a request and wrap the response.

        Raises:
            TransportError: the request failed before a response arrived
        """
        method = method.upper()
        content = body.encode("utf-8") if body and method in BODY_METHODS else None

        logger.debug(f">>> {method} {url} params={self._safe_params(params)}")
        if content is not None:
            logger.debug(f"    Body: {redact_text(body)}")

        started = time.monotonic()
        try:
            response = self._client.request(
                method,
                url,
                params=params or None,
                headers=headers or None,
                content=content,
                timeout=self._timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.RequestError as e:
            logger.debug(f"<<< {method} {url} failed: {e}")
            raise TransportError(f"{method} {url} failed: {e}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        text = response.text
        logger.debug(f"<<< {method} {url} -> {response.status_code} ({elapsed_ms}ms)")
        if text:
            shown = text if len(text) <= LOG_BODY_LIMIT else text[:LOG_BODY_LIMIT] + "..."
            logger.debug(f"    Response: {redact_text(shown)}")

        return HttpResponse(
            method=method,
            url=str(response.request.url),
            status_code=response.status_code,
            text=text,
            headers=dict(response.headers),
        )

    def get(self, url: str, params: Optional[Dict[str, Any]] = None,
            headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        return self.send(url, "GET", headers=headers, params=params)

    def delete(self, url: str, params: Optional[Dict[str, Any]] = None,
               headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        return self.send(url, "DELETE", headers=headers, params=params)

    def post(self, url: str, body: Optional[str] = None,
             headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        return self.send(url, "POST", headers=headers, body=body)

    def put(self, url: str, body: Optional[str] = None,
            headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        return self.send(url, "PUT", headers=headers, body=body)

    def post_json(
        self,
        url: str,
        payload: Any,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """POST a JSON document (None values are serialized as null)"""
        merged = {"Content-Type": "application/json", "Accept": "application/json"}
        merged.update(headers or {})
        body = "" if payload is None else json.dumps(payload)
        return self.send(url, "POST", headers=merged, body=body, params=params)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _safe_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not params:
            return {}
        return {k: (REDACTED if k in ("sid", "password") else v) for k, v in params.items()}
