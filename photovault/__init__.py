"""
PhotoVault - content-addressed photo uploads to S3-compatible storage.

This package contains the complete application:
- core: Framework-agnostic upload orchestration and accounting logic
- infrastructure: Object storage, EXIF, Cognito and signed-request integrations
- api: FastAPI routes (and a Lambda entry point) for storage statistics
- config: Application configuration
- cli: Command line front-end for batch uploads
"""

__version__ = "0.1.0"
