"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi run-job daily_stock_snapshot
"""

from packerp import create_app

app = create_app()
