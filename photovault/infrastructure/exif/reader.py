"""
Capture time reader backed by Pillow.

Implements the CaptureTimeReader protocol from the core. Pillow only parses
the header to get at EXIF, so this stays cheap even for large photos.
"""

import logging
from typing import Optional

from PIL import ExifTags, Image, UnidentifiedImageError

from ...core.media.sources import MediaSource

logger = logging.getLogger(__name__)


class PillowExifReader:
    """
    Reads DateTimeOriginal, falling back to DateTime.

    DateTimeOriginal lives in the Exif sub-IFD; DateTime lives in IFD0.
    Opens its own handle from the source and closes it before returning.
    """

    def read_capture_time(self, source: MediaSource) -> Optional[str]:
        try:
            with source.open() as handle, Image.open(handle) as image:
                exif = image.getexif()
                original = exif.get_ifd(ExifTags.IFD.Exif).get(ExifTags.Base.DateTimeOriginal)
                fallback = exif.get(ExifTags.Base.DateTime)
        except UnidentifiedImageError:
            logger.debug("Source is not a readable image", extra={"identifier": source.identifier})
            return None

        for value in (original, fallback):
            if isinstance(value, bytes):
                value = value.decode("ascii", errors="ignore")
            if value and str(value).strip():
                return str(value)
        return None
