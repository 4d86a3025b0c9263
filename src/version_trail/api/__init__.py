"""Read-only HTTP surface over the version history."""

from version_trail.api.routes import router

__all__ = ["router"]
