"""API Package.

FastAPI server for the Contact Resolution service.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
