"""
Unit tests for identity resolution, prefix persistence and the Cognito
provider. boto3 is mocked; nothing talks to AWS.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from photovault.core.media.errors import ForbiddenError, NotAuthenticatedError
from photovault.core.media.identity import AccountRecord, IdentityResolver
from photovault.core.media.models import Credentials, Identity
from photovault.infrastructure.auth import (
    CognitoAuthError,
    CognitoAuthProvider,
    InMemoryPrefixStore,
    JsonFilePrefixStore,
    StaticAuthProvider,
)

from conftest import IDENTITY_ID, LABEL


class ExplodingProvider(StaticAuthProvider):
    def current_identity(self):
        raise RuntimeError("token service down")


# ---------------------------------------------------------------------------
# Identity Resolver Tests
# ---------------------------------------------------------------------------

class TestIdentityResolver:
    """Tests for IdentityResolver."""

    def test_resolve_identity(self):
        identity = Identity(identity_id=IDENTITY_ID, label=LABEL)
        resolver = IdentityResolver(StaticAuthProvider(identity), InMemoryPrefixStore())
        assert resolver.resolve_identity() == identity

    def test_no_principal_is_not_authenticated(self):
        resolver = IdentityResolver(StaticAuthProvider(None), InMemoryPrefixStore())
        with pytest.raises(NotAuthenticatedError):
            resolver.resolve_identity()

    def test_provider_failure_is_not_authenticated(self):
        resolver = IdentityResolver(ExplodingProvider(), InMemoryPrefixStore())
        with pytest.raises(NotAuthenticatedError, match="token service down"):
            resolver.resolve_identity()

    def test_prefix_created_once_and_reused(self):
        store = InMemoryPrefixStore()
        resolver = IdentityResolver(StaticAuthProvider(), store)
        identity = Identity(identity_id=IDENTITY_ID, label=LABEL)

        first = resolver.get_or_create_prefix(identity)
        second = resolver.get_or_create_prefix(identity)

        assert first == second == f"{LABEL}_{IDENTITY_ID}"
        assert store.save_count == 1

    def test_degraded_provider_gets_random_prefix(self):
        """No identity id: a random id is used, persisted, and reused."""
        store = InMemoryPrefixStore()
        resolver = IdentityResolver(StaticAuthProvider(), store)
        identity = Identity(identity_id=None, label=LABEL)

        prefix = resolver.get_or_create_prefix(identity)

        assert prefix.startswith(f"{LABEL}_")
        assert len(prefix) > len(LABEL) + 1
        assert resolver.get_or_create_prefix(identity) == prefix

    def test_cached_prefix_of_other_user_is_forbidden(self):
        store = InMemoryPrefixStore(AccountRecord(label="someone@else.com", prefix="someone@else.com_x", identity_id="x"))
        resolver = IdentityResolver(StaticAuthProvider(), store)

        with pytest.raises(ForbiddenError, match="sign out first"):
            resolver.get_or_create_prefix(Identity(identity_id=IDENTITY_ID, label=LABEL))

    def test_cached_prefix_with_other_identity_id_is_forbidden(self):
        store = InMemoryPrefixStore(AccountRecord(label=LABEL, prefix=f"{LABEL}_old", identity_id="old"))
        resolver = IdentityResolver(StaticAuthProvider(), store)

        with pytest.raises(ForbiddenError):
            resolver.get_or_create_prefix(Identity(identity_id=IDENTITY_ID, label=LABEL))

    def test_open_session_carries_credentials(self):
        creds = Credentials(access_key_id="AKIA", secret_access_key="secret", session_token="token")
        provider = StaticAuthProvider(Identity(identity_id=IDENTITY_ID, label=LABEL), creds)
        session = IdentityResolver(provider, InMemoryPrefixStore()).open_session()

        assert session.prefix == f"{LABEL}_{IDENTITY_ID}"
        assert session.credentials == creds

    def test_sign_out_clears_everything(self):
        store = InMemoryPrefixStore()
        provider = StaticAuthProvider(Identity(identity_id=IDENTITY_ID, label=LABEL))
        resolver = IdentityResolver(provider, store)
        resolver.open_session()

        resolver.sign_out()

        assert store.load() is None
        with pytest.raises(NotAuthenticatedError):
            resolver.resolve_identity()


# ---------------------------------------------------------------------------
# Prefix Store Tests
# ---------------------------------------------------------------------------

class TestJsonFilePrefixStore:
    """Tests for the file-backed prefix store."""

    def test_round_trip_survives_new_instance(self, tmp_path):
        path = tmp_path / "state" / "account.json"
        record = AccountRecord(label=LABEL, prefix=f"{LABEL}_{IDENTITY_ID}", identity_id=IDENTITY_ID)

        JsonFilePrefixStore(path).save(record)

        assert JsonFilePrefixStore(path).load() == record
        assert not (tmp_path / "state" / "account.json.tmp").exists()

    def test_missing_file_loads_none(self, tmp_path):
        assert JsonFilePrefixStore(tmp_path / "nope.json").load() is None

    def test_corrupt_file_loads_none(self, tmp_path):
        path = tmp_path / "account.json"
        path.write_text("{not json")
        assert JsonFilePrefixStore(path).load() is None

    def test_incomplete_record_loads_none(self, tmp_path):
        path = tmp_path / "account.json"
        path.write_text(json.dumps({"label": LABEL}))
        assert JsonFilePrefixStore(path).load() is None

    def test_clear_is_idempotent(self, tmp_path):
        path = tmp_path / "account.json"
        store = JsonFilePrefixStore(path)
        store.save(AccountRecord(label=LABEL, prefix="p_1"))

        store.clear()
        store.clear()

        assert not path.exists()


# ---------------------------------------------------------------------------
# Cognito Provider Tests
# ---------------------------------------------------------------------------

def cognito_client(expiration=None):
    client = MagicMock()
    client.get_id.return_value = {"IdentityId": IDENTITY_ID}
    client.get_credentials_for_identity.return_value = {
        "IdentityId": IDENTITY_ID,
        "Credentials": {
            "AccessKeyId": "ASIA123",
            "SecretKey": "secret",
            "SessionToken": "session",
            "Expiration": expiration or datetime.now(timezone.utc) + timedelta(hours=1),
        },
    }
    return client


class TestCognitoAuthProvider:
    """Tests for CognitoAuthProvider with a mocked boto3 client."""

    def test_requires_pool_id(self):
        with pytest.raises(ValueError, match="identity_pool_id"):
            CognitoAuthProvider(identity_pool_id="", region="eu-central-1")

    def test_sign_in_exchanges_token(self):
        client = cognito_client()
        with patch("boto3.client", return_value=client) as factory:
            provider = CognitoAuthProvider("eu-central-1:pool", "eu-central-1")
        factory.assert_called_once_with("cognito-identity", region_name="eu-central-1")

        identity = provider.sign_in("google-id-token", LABEL)

        assert identity == Identity(identity_id=IDENTITY_ID, label=LABEL)
        client.get_id.assert_called_once_with(
            IdentityPoolId="eu-central-1:pool",
            Logins={"accounts.google.com": "google-id-token"},
        )
        creds = provider.credentials()
        assert creds.access_key_id == "ASIA123"
        assert creds.session_token == "session"

    def test_signed_out_provider_has_nothing(self):
        with patch("boto3.client", return_value=cognito_client()):
            provider = CognitoAuthProvider("pool", "eu-central-1")

        assert provider.current_identity() is None
        assert provider.credentials() is None

    def test_expiring_credentials_are_refreshed(self):
        client = cognito_client(expiration=datetime.now(timezone.utc) + timedelta(minutes=1))
        with patch("boto3.client", return_value=client):
            provider = CognitoAuthProvider("pool", "eu-central-1")
        provider.sign_in("token", LABEL)

        provider.credentials()

        assert client.get_credentials_for_identity.call_count == 2

    def test_rejected_token_raises(self):
        client = cognito_client()
        client.get_id.side_effect = ClientError(
            {"Error": {"Code": "NotAuthorizedException", "Message": "Invalid login token"}}, "GetId"
        )
        with patch("boto3.client", return_value=client):
            provider = CognitoAuthProvider("pool", "eu-central-1")

        with pytest.raises(CognitoAuthError, match="Invalid login token"):
            provider.sign_in("bad-token", LABEL)
        assert provider.current_identity() is None

    def test_empty_token_rejected(self):
        with patch("boto3.client", return_value=cognito_client()):
            provider = CognitoAuthProvider("pool", "eu-central-1")
        with pytest.raises(CognitoAuthError, match="empty"):
            provider.sign_in("", LABEL)

    def test_sign_out_forgets_identity(self):
        with patch("boto3.client", return_value=cognito_client()):
            provider = CognitoAuthProvider("pool", "eu-central-1")
        provider.sign_in("token", LABEL)

        provider.sign_out()

        assert provider.current_identity() is None
        assert provider.credentials() is None

    def test_resolver_with_cognito_provider(self):
        with patch("boto3.client", return_value=cognito_client()):
            provider = CognitoAuthProvider("pool", "eu-central-1")
        provider.sign_in("token", LABEL)

        session = IdentityResolver(provider, InMemoryPrefixStore()).open_session()

        assert session.prefix == f"{LABEL}_{IDENTITY_ID}"
        assert session.credentials.access_key_id == "ASIA123"
