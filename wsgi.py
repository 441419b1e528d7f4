"""
WSGI and Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi seed-catalog
    flask --app wsgi run-job coverage_status
    flask --app wsgi db upgrade
"""

from fieldsync import create_app

app = create_app()
