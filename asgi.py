"""
asgi.py -- ASGI entry point for MemberDesk.

Run with:  uvicorn asgi:app --reload

api/main.py assembles the application; this module only re-exports it so
deployment configuration has a stable, top-level import path.
"""

from api.main import app

__all__ = ["app"]
