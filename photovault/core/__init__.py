"""
Core business logic for photo uploads.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or Pillow. Infrastructure is reached through the protocols declared
here, so the upload and accounting logic can be tested in isolation.
"""
