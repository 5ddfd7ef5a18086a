"""
Identity and storage namespace resolution.

Every object a user owns lives under one prefix, "{label}_{identityId}".
The prefix is derived from the authenticated identity, never from
unauthenticated input, and once computed it is persisted and reused.
Re-deriving it on every launch would make the namespace drift whenever
the auth provider has a bad day.

Degraded mode: if the provider authenticates the user but cannot hand out
an identity id, we generate a random id, warn, and persist that. Such a
prefix does not survive a reinstall. This is a known weakness, kept
visible in the logs rather than hidden.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from .errors import ForbiddenError, NotAuthenticatedError
from .keys import build_prefix
from .models import Credentials, Identity, Session

logger = logging.getLogger(__name__)


class AuthProvider(Protocol):
    """
    The external sign-in collaborator.

    The resolver only asks it who is signed in; it never authenticates.
    """

    def current_identity(self) -> Optional[Identity]:
        """The signed-in principal, or None."""
        ...

    def credentials(self) -> Optional[Credentials]:
        """Temporary store credentials for the signed-in principal, if any."""
        ...

    def sign_out(self) -> None:
        ...


@dataclass(frozen=True)
class AccountRecord:
    """What we persist about the signed-in account."""
    label: str
    prefix: str
    identity_id: Optional[str] = None


class PrefixStore(Protocol):
    """Durable local storage for the account record."""

    def load(self) -> Optional[AccountRecord]:
        ...

    def save(self, record: AccountRecord) -> None:
        ...

    def clear(self) -> None:
        ...


class IdentityResolver:
    """
    Maps the signed-in principal to its storage prefix.

    Owns the cached prefix; the upload engine and accounting service only
    read it (through a Session).
    """

    def __init__(self, auth_provider: AuthProvider, prefix_store: PrefixStore) -> None:
        self._auth = auth_provider
        self._store = prefix_store

    def resolve_identity(self) -> Identity:
        """Return the current principal or raise NotAuthenticatedError."""
        try:
            identity = self._auth.current_identity()
        except Exception as e:
            logger.error("Identity provider failed", extra={"error": str(e)})
            raise NotAuthenticatedError(f"Could not resolve identity: {e}") from e

        if identity is None:
            raise NotAuthenticatedError("No signed-in user")
        return identity

    def get_or_create_prefix(self, identity: Identity) -> str:
        """
        Return the persisted prefix for this identity, creating it on first use.

        A cached prefix that belongs to someone else is never reused or
        silently replaced: sign out first.
        """
        record = self._store.load()
        if record is not None:
            if not self._owns(record, identity):
                logger.error(
                    "Cached prefix belongs to a different identity",
                    extra={"cached_label": record.label, "label": identity.label}
                )
                raise ForbiddenError(
                    "Signed-in identity does not own the cached prefix; sign out first"
                )
            return record.prefix

        if identity.identity_id:
            identity_id = identity.identity_id
        else:
            identity_id = str(uuid.uuid4())
            logger.warning(
                "Identity id unavailable, using a random id for the storage prefix. "
                "This prefix will not survive a reinstall.",
                extra={"label": identity.label}
            )

        prefix = build_prefix(identity.label, identity_id)
        self._store.save(AccountRecord(
            label=identity.label,
            prefix=prefix,
            identity_id=identity.identity_id,
        ))
        logger.info("Created storage prefix", extra={"prefix": prefix})
        return prefix

    def open_session(self) -> Session:
        """Resolve identity, prefix and credentials in one step."""
        identity = self.resolve_identity()
        prefix = self.get_or_create_prefix(identity)
        return Session(
            identity=identity,
            prefix=prefix,
            credentials=self._auth.credentials(),
        )

    def sign_out(self) -> None:
        """Forget the identity and its cached prefix."""
        self._auth.sign_out()
        self._store.clear()
        logger.info("Signed out and cleared cached prefix")

    @staticmethod
    def _owns(record: AccountRecord, identity: Identity) -> bool:
        if record.label != identity.label:
            return False
        # a missing id on either side (degraded provider) does not prove a mismatch
        if record.identity_id and identity.identity_id:
            return record.identity_id == identity.identity_id
        return True
