"""
asgi.py -- ASGI entry point for authrelay.

Builds the production app: the identity backend and profile store are
constructed from Settings during startup.

Run with:  uvicorn asgi:app --reload
           python main.py
"""

from api.main import create_app

app = create_app()
