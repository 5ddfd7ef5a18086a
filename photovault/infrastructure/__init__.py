"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Object storage (S3/R2) and the in-memory mock
- exif: Image metadata via Pillow
- auth: Cognito identity and local account persistence
- accounting: Signed client for the statistics endpoint

These wrappers translate between external formats and our domain models.
"""
