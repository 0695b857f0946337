"""API Routes Package."""

from api.routes import resolution, health

__all__ = [
    "health",
    "resolution",
]
