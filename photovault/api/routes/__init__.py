"""API route modules."""

from . import health, storage

__all__ = ["health", "storage"]
