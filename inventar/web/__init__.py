"""HTTP API for the inventory app."""

from .app import create_app

__all__ = ["create_app"]
