"""
Restoration Ops Board WSGI entry point (also used by Flask-Migrate).

Usage:
    flask --app wsgi run
    flask --app wsgi db init      # first time only (creates migrations/)
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

import os

from app import create_app

app = create_app(os.getenv("APP_ENV", "development"))
