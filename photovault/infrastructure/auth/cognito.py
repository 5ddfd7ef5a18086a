"""
Cognito Identity Pool authentication.

Exchanges a federated ID token (Google by default) for a Cognito identity
id and temporary AWS credentials. Those credentials are what the S3 client
uses, so the app never ships long-lived keys.

Credentials are held on the provider instance, not in a module global;
whoever owns the provider owns the login.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from ...core.media.models import Credentials, Identity

logger = logging.getLogger(__name__)

# refresh a little before the credentials actually expire
EXPIRY_MARGIN = timedelta(minutes=5)


class CognitoAuthError(Exception):
    """Raised when Cognito rejects or cannot process a login."""
    pass


class CognitoAuthProvider:
    """
    AuthProvider implementation for Cognito Identity Pools.

    sign_in() does the token exchange; current_identity() and
    credentials() then answer from the cached result, refreshing
    credentials when they are about to expire.
    """

    def __init__(
        self,
        identity_pool_id: str,
        region: str,
        login_provider: str = "accounts.google.com",
    ) -> None:
        if not identity_pool_id:
            raise ValueError("identity_pool_id is required")

        try:
            import boto3
        except ImportError:
            raise ImportError(
                "boto3 is required for Cognito. Install with: pip install boto3"
            )

        self._pool_id = identity_pool_id
        self._login_provider = login_provider
        self._client = boto3.client("cognito-identity", region_name=region)

        self._label: Optional[str] = None
        self._identity_id: Optional[str] = None
        self._logins: dict[str, str] = {}
        self._credentials: Optional[Credentials] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self._logins)

    def sign_in(self, id_token: str, label: str) -> Identity:
        """
        Exchange an ID token for a Cognito identity and credentials.

        The token itself is never logged.
        """
        if not id_token:
            raise CognitoAuthError("ID token is empty")
        if not label:
            raise CognitoAuthError("Account label is required")

        logins = {self._login_provider: id_token}
        logger.info(
            "Authenticating with Cognito",
            extra={"login_provider": self._login_provider, "token_length": len(id_token)}
        )

        try:
            response = self._client.get_id(IdentityPoolId=self._pool_id, Logins=logins)
            identity_id = response["IdentityId"]
            credentials = self._fetch_credentials(identity_id, logins)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to authenticate with Cognito", extra={"error": str(e)})
            raise CognitoAuthError(f"Cognito authentication failed: {e}") from e

        self._label = label
        self._identity_id = identity_id
        self._logins = logins
        self._credentials = credentials

        logger.info("Authenticated with Cognito", extra={"identity_id": identity_id})
        return Identity(identity_id=identity_id, label=label)

    def current_identity(self) -> Optional[Identity]:
        if not self.is_authenticated or self._label is None:
            return None
        return Identity(identity_id=self._identity_id, label=self._label)

    def credentials(self) -> Optional[Credentials]:
        if not self.is_authenticated or self._identity_id is None:
            return None

        if self._needs_refresh():
            try:
                self._credentials = self._fetch_credentials(self._identity_id, self._logins)
            except (ClientError, BotoCoreError) as e:
                logger.error("Failed to refresh Cognito credentials", extra={"error": str(e)})
                raise CognitoAuthError(f"Credential refresh failed: {e}") from e

        return self._credentials

    def sign_out(self) -> None:
        logger.info("Signing out from Cognito")
        self._label = None
        self._identity_id = None
        self._logins = {}
        self._credentials = None

    def _needs_refresh(self) -> bool:
        if self._credentials is None:
            return True
        expiration = self._credentials.expiration
        if expiration is None:
            return False
        return expiration - EXPIRY_MARGIN <= datetime.now(timezone.utc)

    def _fetch_credentials(self, identity_id: str, logins: dict[str, str]) -> Credentials:
        response = self._client.get_credentials_for_identity(
            IdentityId=identity_id,
            Logins=logins,
        )
        raw = response["Credentials"]
        return Credentials(
            access_key_id=raw["AccessKeyId"],
            secret_access_key=raw["SecretKey"],
            session_token=raw.get("SessionToken"),
            expiration=raw.get("Expiration"),
        )


class StaticAuthProvider:
    """
    AuthProvider with a fixed identity.

    Used in mock mode, by the CLI when an identity id is given directly,
    and in tests. identity=None behaves like a signed-out device.
    """

    def __init__(
        self,
        identity: Optional[Identity] = None,
        credentials: Optional[Credentials] = None,
    ) -> None:
        self._identity = identity
        self._credentials = credentials

    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def credentials(self) -> Optional[Credentials]:
        return self._credentials

    def sign_out(self) -> None:
        self._identity = None
        self._credentials = None
