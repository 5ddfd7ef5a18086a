"""
HTTP layer.

FastAPI routes for the accounting service, their dependencies, and the
AWS Lambda entry point that serves the same contract.
"""
