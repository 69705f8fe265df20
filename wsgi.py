"""
WSGI / Flask-Migrate / Alembic entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi process-validated
"""

from app import create_app

app = create_app()
