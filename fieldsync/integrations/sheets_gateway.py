"""
Google Sheets Integration Gateway.

All outbound calls to the Sheets API v4 go through this class.

  - Auth: service-account credentials (GOOGLE_SERVICE_ACCOUNT_FILE) wrapped
    in google-auth's AuthorizedSession, which refreshes the bearer token
    on its own
  - Timeout: EXTERNAL_TIMEOUT_SECONDS per call
  - No retry: a failed append leaves the mirror marker unset and the
    mirror reconciler picks it up later

Appends are NOT idempotent: every successful call adds one row.

Testability: pass a mock `session` to SheetsGateway() in tests.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from flask import current_app
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from fieldsync.integrations.base import GatewayResult, HTTPGateway

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

_ROW_IN_RANGE = re.compile(r"!\$?[A-Za-z]+\$?(\d+)")


def parse_row_number(a1_range: str | None) -> int | None:
    """Return the first row number of an A1 range like ``Sheet1!A5:L5``."""
    if not a1_range:
        return None
    match = _ROW_IN_RANGE.search(a1_range)
    return int(match.group(1)) if match else None


def _range_path(a1_range: str) -> str:
    return quote(a1_range, safe="!:'$")


class SheetsGateway(HTTPGateway):
    """Google Sheets API v4 gateway.

    Usage:
        from fieldsync.integrations.sheets_gateway import sheets_gateway
        result = sheets_gateway.append_row(spreadsheet_id, "Sheet1!A:L", row)
    """

    name = "sheets"
    transport_errors = (GoogleAuthError, OSError, ValueError)

    def _create_session(self) -> AuthorizedSession:
        key_file = current_app.config.get("GOOGLE_SERVICE_ACCOUNT_FILE")
        if not key_file:
            raise ValueError("GOOGLE_SERVICE_ACCOUNT_FILE is not configured")
        credentials = service_account.Credentials.from_service_account_file(key_file, scopes=SCOPES)
        logger.info("Sheets session created for %s", credentials.service_account_email)
        return AuthorizedSession(credentials)

    @staticmethod
    def _timeout() -> int:
        return current_app.config.get("EXTERNAL_TIMEOUT_SECONDS", 30)

    def append_row(self, spreadsheet_id: str, a1_range: str, values: list) -> GatewayResult:
        """Append one row after the last row of the table found in `a1_range`.

        Endpoint: POST /v4/spreadsheets/{id}/values/{range}:append

        Returns:
            GatewayResult.data = {"updates": {"updatedRange": "Sheet1!A5:L5", ...}}
        """
        if not spreadsheet_id:
            return self.not_configured("spreadsheet id")
        url = f"{SHEETS_API_BASE}/{spreadsheet_id}/values/{_range_path(a1_range)}:append"
        return self.request(
            "POST", url,
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json_body={"values": [values]},
            timeout=self._timeout(),
        )

    def read_range(self, spreadsheet_id: str, a1_range: str) -> GatewayResult:
        """Bulk-read a range.

        Returns:
            GatewayResult.data = {"range": str, "values": list[list[str]]}
            (``values`` is absent when the range is empty)
        """
        if not spreadsheet_id:
            return self.not_configured("spreadsheet id")
        url = f"{SHEETS_API_BASE}/{spreadsheet_id}/values/{_range_path(a1_range)}"
        return self.request("GET", url, timeout=self._timeout())

    def update_range(self, spreadsheet_id: str, a1_range: str, values: list) -> GatewayResult:
        """Overwrite the cells of one row starting at `a1_range`."""
        if not spreadsheet_id:
            return self.not_configured("spreadsheet id")
        url = f"{SHEETS_API_BASE}/{spreadsheet_id}/values/{_range_path(a1_range)}"
        return self.request(
            "PUT", url,
            params={"valueInputOption": "USER_ENTERED"},
            json_body={"majorDimension": "ROWS", "values": [values]},
            timeout=self._timeout(),
        )


# Module-level singleton, patched in tests.
# In tests, override via:
#   patch.object(sheets_module.sheets_gateway, "append_row", return_value=...)
sheets_gateway = SheetsGateway()
