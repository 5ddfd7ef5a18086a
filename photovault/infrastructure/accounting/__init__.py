"""Signed client for the storage statistics endpoint."""

from .client import SignedStatsClient

__all__ = ["SignedStatsClient"]
