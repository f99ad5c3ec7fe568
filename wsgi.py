"""
WSGI / Flask-Migrate entry point.

Usage:
    flask db upgrade
    flask seed-reference-data
    flask run-job expired_matter_scan
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
