"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi create-admin
    gunicorn wsgi:app
"""

from po_tracker import create_app

app = create_app()
