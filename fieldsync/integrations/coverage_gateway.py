"""
Coverage-check Bot Integration Gateway.

The coverage service decides asynchronously whether a location can be
served. It is registered once per submission and then polled.

  - Auth: static API key in the ``x-api-key`` header
  - POST /api/check-coverage          → {"data": [{"id": ...}, ...]}
  - GET  /api/check-coverage/{id}     → {"data": {"is_covered", "homepassed_id", "operator_remarks"}}
  - Timeout: EXTERNAL_TIMEOUT_SECONDS; no retry

Testability: pass a mock `session` to CoverageGateway() in tests.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from flask import current_app

from fieldsync.integrations.base import GatewayResult, HTTPGateway

logger = logging.getLogger(__name__)


class CoverageGateway(HTTPGateway):
    """Coverage-check bot REST API gateway.

    Usage:
        from fieldsync.integrations.coverage_gateway import coverage_gateway
        result = coverage_gateway.register(payload)
    """

    name = "coverage"

    @staticmethod
    def _settings() -> tuple[str, dict, int]:
        cfg = current_app.config
        headers = {
            "Content-Type": "application/json",
            "x-api-key": cfg.get("COVERAGE_BOT_API_KEY", ""),
        }
        return cfg.get("COVERAGE_BOT_HOST", "").rstrip("/"), headers, cfg.get("EXTERNAL_TIMEOUT_SECONDS", 30)

    def register(self, payload: dict) -> GatewayResult:
        """POST a coverage check request."""
        host, headers, timeout = self._settings()
        if not host:
            return self.not_configured("COVERAGE_BOT_HOST")
        return self.request(
            "POST", f"{host}/api/check-coverage",
            headers=headers, json_body=payload, timeout=timeout,
        )

    def get_status(self, bot_id: str) -> GatewayResult:
        """GET the current state of a coverage check by correlation id."""
        host, headers, timeout = self._settings()
        if not host:
            return self.not_configured("COVERAGE_BOT_HOST")
        return self.request(
            "GET", f"{host}/api/check-coverage/{quote(str(bot_id), safe='')}",
            headers=headers, timeout=timeout,
        )


# Module-level singleton, patched in tests.
coverage_gateway = CoverageGateway()
