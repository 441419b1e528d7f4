"""Public photo URLs for a submission.

Template: ``{API_URL}/{prefix}/submissions/{id}/photos/{filename}`` where
prefix is ``api`` in development and ``xapi`` everywhere else (the
production reverse proxy mounts the API under ``/xapi``).
"""

from __future__ import annotations

from urllib.parse import quote

from flask import current_app


def photo_url_prefix(app_env: str) -> str:
    return "api" if app_env == "development" else "xapi"


def build_photo_url(submission_id: str, filename: str) -> str:
    base = current_app.config["API_URL"].rstrip("/")
    prefix = photo_url_prefix(current_app.config.get("APP_ENV", "production"))
    return f"{base}/{prefix}/submissions/{submission_id}/photos/{quote(filename)}"


def build_photo_urls(submission_id: str, filenames) -> list[str]:
    return [build_photo_url(submission_id, name) for name in filenames]
