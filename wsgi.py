"""
Flask-Migrate / Alembic / gunicorn entry point.

Usage:
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from assessment_platform import create_app

app = create_app()
