"""
asgi.py -- ASGI entry point for the auth service.

Run with:  uvicorn asgi:app
           python main.py serve

Importing api.main validates configuration; a missing JWT_SECRET or
DATASTORE stops the import, so uvicorn exits before binding a port.
"""

from api.main import app

__all__ = ["app"]
