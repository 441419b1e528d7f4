"""
Shared plumbing for outbound HTTP gateways.

Gateways never raise on HTTP or transport failures: they return a
`GatewayResult` and the calling service decides what the failure means
(log it, leave the marker unset, abort a reconciler run).

Testability: pass a mock `session` to the gateway constructor in tests
instead of letting it create a real session lazily.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


class GatewayResult:
    """Structured return value from gateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON response body (dict or list), else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency in milliseconds.
        payload_hash:   SHA-256 of the serialised request payload (hex).
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
        payload_hash: str | None = None,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.payload_hash = payload_hash

    def to_log_dict(self) -> dict:
        """Return fields suitable for SyncLog creation."""
        return {
            "http_status_code": self.status_code,
            "error_message": self.error,
            "duration_ms": self.duration_ms,
            "payload_hash": self.payload_hash,
            "status": "success" if self.ok else "error",
        }

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


def compute_payload_hash(payload: dict | list | None) -> str | None:
    """Return SHA-256 hex digest of the JSON-serialised payload."""
    if payload is None:
        return None
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


class HTTPGateway:
    """Base class: lazy session, single-shot request, failure capture."""

    name = "http"

    # Exceptions treated as transport failures in addition to requests' own
    transport_errors: tuple[type[BaseException], ...] = ()

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session

    def _create_session(self) -> requests.Session:
        return requests.Session()

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the HTTP session."""
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def reset_session(self) -> None:
        """Drop the cached session; the next call creates a fresh one."""
        self._session = None

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict | None = None,
        json_body: dict | list | None = None,
        params: dict | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> GatewayResult:
        """Execute one HTTP request and wrap the outcome.

        Returns:
            GatewayResult — always returns (never raises). Callers check .ok.
        """
        payload_hash = compute_payload_hash(json_body)
        kwargs: dict[str, Any] = {"headers": headers or {}, "timeout": timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning("%s request timed out after %ss url=%s", self.name, timeout, url)
            return GatewayResult(
                ok=False, status_code=None, data=None,
                error=f"Request timed out after {timeout}s",
                duration_ms=int(timeout * 1000), payload_hash=payload_hash,
            )
        except (requests.RequestException, *self.transport_errors) as exc:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            error = str(exc)[:500] or exc.__class__.__name__
            logger.warning("%s network error url=%s error=%s", self.name, url, error)
            return GatewayResult(
                ok=False, status_code=None, data=None, error=error,
                duration_ms=duration_ms, payload_hash=payload_hash,
            )

        duration_ms = int((time.perf_counter() - t0) * 1000)
        if not resp.ok:
            logger.warning("%s request failed status=%d url=%s", self.name, resp.status_code, url)
            return GatewayResult(
                ok=False, status_code=resp.status_code, data=None,
                error=f"HTTP {resp.status_code}: {resp.text[:500]}",
                duration_ms=duration_ms, payload_hash=payload_hash,
            )

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}
        return GatewayResult(
            ok=True, status_code=resp.status_code, data=data, error=None,
            duration_ms=duration_ms, payload_hash=payload_hash,
        )

    @staticmethod
    def not_configured(setting: str) -> GatewayResult:
        return GatewayResult(
            ok=False, status_code=None, data=None,
            error=f"{setting} is not configured", duration_ms=0,
        )
