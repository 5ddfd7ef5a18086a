"""
Identity integrations.

Cognito Identity Pools for sign-in and credentials, plus local persistence
of the account record and its storage prefix.
"""

from .cognito import CognitoAuthError, CognitoAuthProvider, StaticAuthProvider
from .prefix_store import InMemoryPrefixStore, JsonFilePrefixStore

__all__ = [
    "CognitoAuthError",
    "CognitoAuthProvider",
    "StaticAuthProvider",
    "InMemoryPrefixStore",
    "JsonFilePrefixStore",
]
