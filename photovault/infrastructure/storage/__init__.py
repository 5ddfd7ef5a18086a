"""
Object storage integration for uploaded photos.

Supports S3 (AWS) and R2/MinIO via the S3-compatible API.
Includes mock mode for local development without credentials.
"""

from .client import InMemoryObjectStore, S3ObjectStore, StorageConfig, create_object_store

__all__ = ["InMemoryObjectStore", "S3ObjectStore", "StorageConfig", "create_object_store"]
