"""
Unit tests for capture timestamp extraction.

Covers the extractor's fallback tagging with stub readers, and the Pillow
reader against real (tiny) JPEGs.
"""

from datetime import datetime

import pytest

from photovault.core.media.models import TimestampSource
from photovault.core.media.sources import BytesMediaSource
from photovault.core.media.timestamps import TimestampExtractor, parse_exif_datetime
from photovault.infrastructure.exif.reader import PillowExifReader

from conftest import make_jpeg

FROZEN_NOW = datetime(2025, 6, 30, 8, 15, 0)


class StubReader:
    def __init__(self, value=None, error=None):
        self.value = value
        self.error = error

    def read_capture_time(self, source):
        if self.error is not None:
            raise self.error
        return self.value


def extractor_with(reader):
    return TimestampExtractor(reader, clock=lambda: FROZEN_NOW)


# ---------------------------------------------------------------------------
# Extractor Tests
# ---------------------------------------------------------------------------

class TestTimestampExtractor:
    """Tests for TimestampExtractor."""

    def test_content_timestamp(self):
        info = extractor_with(StubReader("2021:07:04 18:30:12")).extract(BytesMediaSource(b""))

        assert info.source is TimestampSource.CONTENT
        assert info.month_bucket == "2021-07"
        assert info.timestamp == "2021-07-04_18-30-12"

    def test_missing_metadata_falls_back_to_clock(self):
        info = extractor_with(StubReader(None)).extract(BytesMediaSource(b""))

        assert info.source is TimestampSource.FALLBACK
        assert info.timestamp == "2025-06-30_08-15-00"

    def test_malformed_metadata_falls_back(self):
        info = extractor_with(StubReader("yesterday-ish")).extract(BytesMediaSource(b""))
        assert info.is_fallback

    def test_reader_exception_falls_back(self):
        """A reader that blows up is treated like missing metadata."""
        info = extractor_with(StubReader(error=OSError("corrupt"))).extract(BytesMediaSource(b""))
        assert info.is_fallback
        assert info.captured_at == FROZEN_NOW

    def test_padded_exif_value_parses(self):
        assert parse_exif_datetime("2020:02:29 00:00:01\x00 ") == datetime(2020, 2, 29, 0, 0, 1)

    def test_parse_rejects_iso_format(self):
        with pytest.raises(ValueError):
            parse_exif_datetime("2020-02-29T00:00:01")


# ---------------------------------------------------------------------------
# Pillow Reader Tests
# ---------------------------------------------------------------------------

class TestPillowExifReader:
    """Tests against real JPEG bytes."""

    def test_reads_datetime_tag(self):
        source = BytesMediaSource(make_jpeg("2019:11:23 07:45:00"), name="with-exif.jpg")
        assert PillowExifReader().read_capture_time(source) == "2019:11:23 07:45:00"

    def test_jpeg_without_exif_returns_none(self):
        source = BytesMediaSource(make_jpeg(), name="plain.jpg")
        assert PillowExifReader().read_capture_time(source) is None

    def test_non_image_returns_none(self):
        source = BytesMediaSource(b"definitely not an image", name="notes.txt")
        assert PillowExifReader().read_capture_time(source) is None

    def test_end_to_end_with_extractor(self):
        extractor = TimestampExtractor(PillowExifReader(), clock=lambda: FROZEN_NOW)
        info = extractor.extract(BytesMediaSource(make_jpeg("2019:11:23 07:45:00")))

        assert info.source is TimestampSource.CONTENT
        assert info.timestamp == "2019-11-23_07-45-00"

    def test_end_to_end_fallback_for_plain_jpeg(self):
        extractor = TimestampExtractor(PillowExifReader(), clock=lambda: FROZEN_NOW)
        info = extractor.extract(BytesMediaSource(make_jpeg()))

        assert info.is_fallback
        assert info.month_bucket == "2025-06"
