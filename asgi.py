"""
asgi.py -- ASGI entry point for SupaGate.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Deployment servers import the app from here rather than from api.main so the
import path stays stable if the application is split into more layers.
"""

from api.main import app

__all__ = ["app"]
