"""
Unit tests for object key and prefix handling.

Keys are a wire format: anything that reads the bucket rebuilds them, and
duplicate detection depends on them being deterministic.
"""

from datetime import datetime

import pytest

from photovault.core.media.errors import InvalidArgumentError
from photovault.core.media.keys import (
    build_prefix,
    derive_key,
    identity_from_prefix,
    namespace_root,
    timestamp_info_for,
    validate_prefix,
)
from photovault.core.media.models import TimestampSource


# ---------------------------------------------------------------------------
# Key Derivation Tests
# ---------------------------------------------------------------------------

class TestDeriveKey:
    """Tests for derive_key."""

    def test_key_layout(self):
        """Keys are prefix/YYYY-MM/YYYY-MM-DD_HH-mm-ss.ext"""
        info = timestamp_info_for(datetime(2024, 3, 1, 10, 0, 0), TimestampSource.CONTENT)
        key = derive_key("u@ex.com_abc123", info)
        assert key == "u@ex.com_abc123/2024-03/2024-03-01_10-00-00.jpg"

    def test_same_inputs_give_same_key(self):
        """Determinism is what makes the existence probe a duplicate check."""
        captured = datetime(2023, 12, 31, 23, 59, 59)
        first = derive_key("a_1", timestamp_info_for(captured, TimestampSource.CONTENT))
        second = derive_key("a_1", timestamp_info_for(captured, TimestampSource.CONTENT))
        assert first == second

    def test_zero_padding(self):
        info = timestamp_info_for(datetime(2024, 1, 2, 3, 4, 5), TimestampSource.CONTENT)
        assert info.month_bucket == "2024-01"
        assert info.timestamp == "2024-01-02_03-04-05"

    def test_extension_leading_dot_is_ignored(self):
        info = timestamp_info_for(datetime(2024, 1, 2, 3, 4, 5), TimestampSource.CONTENT)
        assert derive_key("a_1", info, ".png").endswith("03-04-05.png")

    def test_empty_prefix_rejected(self):
        info = timestamp_info_for(datetime(2024, 1, 2), TimestampSource.CONTENT)
        with pytest.raises(InvalidArgumentError, match="prefix is required"):
            derive_key("", info)


# ---------------------------------------------------------------------------
# Prefix Tests
# ---------------------------------------------------------------------------

class TestPrefix:
    """Tests for prefix construction and parsing."""

    def test_build_prefix_joins_label_and_identity(self):
        assert build_prefix("me@example.com", "eu-central-1:abc") == "me@example.com_eu-central-1:abc"

    def test_identity_component_split_on_last_underscore(self):
        """Emails may contain underscores; identity ids do not."""
        assert identity_from_prefix("first_last@example.com_eu-central-1:abc") == "eu-central-1:abc"

    def test_prefix_without_separator_rejected(self):
        with pytest.raises(InvalidArgumentError, match="form"):
            identity_from_prefix("me@example.com")

    def test_prefix_with_empty_identity_rejected(self):
        with pytest.raises(InvalidArgumentError):
            identity_from_prefix("me@example.com_")

    def test_prefix_with_slash_rejected(self):
        """A slash would address a sub-tree of someone else's namespace."""
        with pytest.raises(InvalidArgumentError, match="must not contain"):
            validate_prefix("victim_1/2024-01")

    def test_whitespace_prefix_rejected(self):
        with pytest.raises(InvalidArgumentError, match="prefix is required"):
            validate_prefix("   ")

    def test_non_string_prefix_rejected(self):
        with pytest.raises(InvalidArgumentError, match="must be a string"):
            validate_prefix(123)

    def test_namespace_root_has_trailing_slash(self):
        """Listing 'a_1/' must not also match 'a_12/...'."""
        assert namespace_root("a_1") == "a_1/"
