"""
Object key layout.

Every object lives at:

    {prefix}/{YYYY-MM}/{YYYY-MM-DD_HH-mm-ss}.{ext}

and the prefix itself is "{label}_{identityId}". Anything reading the bucket
has to rebuild these strings to find a user's files, so the formats below
are effectively a wire format. Keep them pure and deterministic: the same
prefix and capture instant must always produce the same key, because that
is how duplicates are detected.

Two different photos taken in the same second under the same prefix map to
the same key. That is a known limitation; the second one is skipped.
"""

from datetime import datetime

from .errors import InvalidArgumentError
from .models import TimestampInfo, TimestampSource

MONTH_FORMAT = "%Y-%m"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DEFAULT_EXTENSION = "jpg"
PREFIX_SEPARATOR = "_"


def timestamp_info_for(captured_at: datetime, source: TimestampSource) -> TimestampInfo:
    """Build the key fragments for a capture instant."""
    return TimestampInfo(
        month_bucket=captured_at.strftime(MONTH_FORMAT),
        timestamp=captured_at.strftime(TIMESTAMP_FORMAT),
        source=source,
        captured_at=captured_at,
    )


def derive_key(prefix: str, timestamp_info: TimestampInfo, extension: str = DEFAULT_EXTENSION) -> str:
    """
    Build the object key for a photo.

    Example: prefix "u@ex.com_abc123", captured 2024-03-01 10:00:00
    gives "u@ex.com_abc123/2024-03/2024-03-01_10-00-00.jpg".
    """
    validate_prefix(prefix)
    ext = extension.lstrip(".")
    return f"{prefix}/{timestamp_info.month_bucket}/{timestamp_info.timestamp}.{ext}"


def build_prefix(label: str, identity_id: str) -> str:
    """Join a label (email) and identity id into a storage prefix."""
    return f"{label}{PREFIX_SEPARATOR}{identity_id}"


def validate_prefix(prefix: str) -> str:
    """
    Reject prefixes that cannot be a namespace root.

    A slash would let a caller address a sub-tree of someone else's
    namespace, so it is never allowed.
    """
    if prefix is not None and not isinstance(prefix, str):
        raise InvalidArgumentError("prefix must be a string")
    if not prefix or not prefix.strip():
        raise InvalidArgumentError("prefix is required")
    if "/" in prefix:
        raise InvalidArgumentError("prefix must not contain '/'")
    return prefix


def identity_from_prefix(prefix: str) -> str:
    """
    Extract the identity id embedded in a prefix.

    Splits on the last separator: emails may contain underscores, Cognito
    identity ids ("region:uuid") do not.
    """
    validate_prefix(prefix)
    label, separator, identity_id = prefix.rpartition(PREFIX_SEPARATOR)
    if not separator or not label or not identity_id:
        raise InvalidArgumentError(
            "prefix must have the form '<label>_<identityId>'"
        )
    return identity_id


def namespace_root(prefix: str) -> str:
    """
    The listing prefix for everything a user owns.

    The trailing slash stops "a_1" from also matching "a_12/...".
    """
    return f"{validate_prefix(prefix)}/"
