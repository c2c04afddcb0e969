"""HTTP API for the memory store."""

from .main import app

__all__ = ["app"]
