"""Shared fixtures for the unit tests."""

import io
import time
from datetime import datetime

import pytest
from PIL import ExifTags, Image

from photovault.config.settings import get_settings
from photovault.core.media.keys import build_prefix, timestamp_info_for
from photovault.core.media.models import Identity, Session, TimestampSource
from photovault.infrastructure.storage.client import InMemoryObjectStore

IDENTITY_ID = "eu-central-1:1111-2222"
LABEL = "photographer@example.com"


def make_jpeg(capture_time: str | None = None, size: tuple[int, int] = (8, 8)) -> bytes:
    """A tiny real JPEG, optionally carrying an EXIF DateTime tag."""
    image = Image.new("RGB", size, color=(200, 40, 40))
    buffer = io.BytesIO()
    if capture_time is None:
        image.save(buffer, format="JPEG")
    else:
        exif = Image.Exif()
        exif[ExifTags.Base.DateTime] = capture_time
        image.save(buffer, format="JPEG", exif=exif)
    return buffer.getvalue()


def fixed_timestamp(year=2024, month=3, day=9, hour=14, minute=5, second=7):
    return timestamp_info_for(
        datetime(year, month, day, hour, minute, second),
        TimestampSource.CONTENT,
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are lru_cached; every test starts from the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def prefix() -> str:
    return build_prefix(LABEL, IDENTITY_ID)


@pytest.fixture
def session(prefix) -> Session:
    return Session(identity=Identity(identity_id=IDENTITY_ID, label=LABEL), prefix=prefix)


class SlowStream(io.BytesIO):
    """Blocks for delay seconds on every read and hands out at most one KiB."""

    def __init__(self, data: bytes, delay: float):
        super().__init__(data)
        self.delay = delay

    def read(self, size=-1):
        time.sleep(self.delay)
        if size is None or size < 0 or size > 1024:
            size = 1024
        return super().read(size)
