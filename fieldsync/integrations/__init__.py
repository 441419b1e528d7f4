"""fieldsync.integrations — External service gateway modules.

All outbound HTTP calls to the spreadsheet service and the coverage-check
service go through a gateway in this package, never via bare `requests`
calls in services or blueprints.

Every gateway call is:
  - Authenticated (API key header or service-account session)
  - Timed and hashed (payload SHA-256) for the sync audit log
  - Single-shot: no inline retry; reconcilers are the retry mechanism

Current gateways:
  sheets_gateway.SheetsGateway     — Google Sheets API v4 (append, read, update)
  coverage_gateway.CoverageGateway — coverage-check bot REST API
"""
