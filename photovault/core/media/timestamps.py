"""
Capture timestamp extraction.

The object key is built from when the photo was taken, not when it was
uploaded, so re-uploading the same photo lands on the same key. We read
the capture time from embedded image metadata (DateTimeOriginal first,
then DateTime) and fall back to the wall clock when that fails.

The fallback is deliberate and visible: every result is tagged CONTENT or
FALLBACK so callers and tests can tell a real capture time from upload time.
A fallback key is not stable across retries, so a photo without metadata
can be uploaded twice.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from .keys import timestamp_info_for
from .models import TimestampInfo, TimestampSource
from .sources import MediaSource

logger = logging.getLogger(__name__)

# EXIF stores "YYYY:MM:DD HH:MM:SS"
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class CaptureTimeReader(Protocol):
    """
    Reads raw capture-time strings from image bytes.

    Returns the first non-empty value of the primary then secondary field,
    or None. May raise on unreadable content; the extractor treats that
    the same as "no metadata".
    """

    def read_capture_time(self, source: MediaSource) -> Optional[str]:
        ...


def parse_exif_datetime(value: str) -> datetime:
    """Parse an EXIF date string. Raises ValueError on anything malformed."""
    # some writers pad with NULs or trailing spaces
    return datetime.strptime(value.strip().strip("\x00"), EXIF_DATETIME_FORMAT)


class TimestampExtractor:
    """
    Turns a source into the month bucket and timestamp used in its key.

    The reader opens its own handle from the source, so the stream used
    for the upload is never touched.
    """

    def __init__(
        self,
        reader: CaptureTimeReader,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._reader = reader
        self._clock = clock

    def extract(self, source: MediaSource) -> TimestampInfo:
        """Return the capture timestamp, or the current time tagged FALLBACK."""
        try:
            raw = self._reader.read_capture_time(source)
            if raw:
                captured_at = parse_exif_datetime(raw)
                return timestamp_info_for(captured_at, TimestampSource.CONTENT)
            reason = "no capture time in metadata"
        except Exception as e:
            reason = f"unreadable metadata: {e}"

        now = self._clock()
        logger.warning(
            "Falling back to current time for object key",
            extra={"identifier": source.identifier, "reason": reason}
        )
        return timestamp_info_for(now, TimestampSource.FALLBACK)
