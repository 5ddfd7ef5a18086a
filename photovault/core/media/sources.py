"""
Byte sources for uploads.

A source must be re-openable: the timestamp extractor reads metadata from
one handle and the upload engine streams bytes from another, so neither
consumes the other's stream.

Sources that can change underneath us or can only be read once (content
provider streams, pipes) report is_byte_stable=False; the engine copies
those to a staging file first and uploads from the copy.
"""

import io
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

COPY_BUFFER_BYTES = 1024 * 1024


class MediaSource(Protocol):
    """Something the engine can upload."""

    @property
    def identifier(self) -> str:
        """Stable id the caller uses to recognise the item (path, URI...)."""
        ...

    @property
    def is_byte_stable(self) -> bool:
        """True when reopening always yields the same bytes."""
        ...

    def size(self) -> Optional[int]:
        """Total bytes, or None if unknown."""
        ...

    def open(self) -> BinaryIO:
        """Open a fresh handle positioned at the start."""
        ...


@dataclass(frozen=True)
class FileMediaSource:
    """A file on local disk."""
    path: Path

    @property
    def identifier(self) -> str:
        return str(self.path)

    @property
    def is_byte_stable(self) -> bool:
        return True

    def size(self) -> Optional[int]:
        try:
            return self.path.stat().st_size
        except OSError:
            return None

    def open(self) -> BinaryIO:
        return open(self.path, "rb")


@dataclass(frozen=True)
class BytesMediaSource:
    """In-memory bytes. Mostly useful in tests and for small payloads."""
    data: bytes
    name: str = "memory"

    @property
    def identifier(self) -> str:
        return self.name

    @property
    def is_byte_stable(self) -> bool:
        return True

    def size(self) -> Optional[int]:
        return len(self.data)

    def open(self) -> BinaryIO:
        return io.BytesIO(self.data)


@dataclass(frozen=True)
class StreamMediaSource:
    """
    A source backed by an opener callable, e.g. a content-provider URI.

    Not byte-stable: the engine stages it before transfer.
    """
    opener: Callable[[], BinaryIO]
    name: str
    known_size: Optional[int] = None

    @property
    def identifier(self) -> str:
        return self.name

    @property
    def is_byte_stable(self) -> bool:
        return False

    def size(self) -> Optional[int]:
        return self.known_size

    def open(self) -> BinaryIO:
        return self.opener()


class StagingCancelled(Exception):
    """Raised when a staging copy notices cancellation mid-copy."""
    pass


def staging_path_for(staging_dir: Optional[Path] = None, extension: str = "jpg") -> Path:
    """A fresh, not yet created staging file path: photo_{uuid}.{ext}."""
    directory = Path(staging_dir) if staging_dir else Path(tempfile.gettempdir())
    return directory / f"photo_{uuid.uuid4()}.{extension.lstrip('.')}"


def copy_to_staging(
    source: MediaSource,
    staging_path: Path,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Path:
    """
    Copy a source into staging_path and return it.

    The file is removed again if the copy fails or is stopped; on success
    the caller owns it. Runs in a worker thread, so should_stop is polled
    between reads.
    """
    staging_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with source.open() as src, open(staging_path, "wb") as dst:
            while True:
                if should_stop is not None and should_stop():
                    raise StagingCancelled("staging copy cancelled")
                buffer = src.read(COPY_BUFFER_BYTES)
                if not buffer:
                    break
                dst.write(buffer)
            if should_stop is not None and should_stop():
                raise StagingCancelled("staging copy cancelled")
    except BaseException:
        remove_staging_file(staging_path)
        raise

    logger.debug(
        "Staged source",
        extra={"identifier": source.identifier, "staging_path": str(staging_path)}
    )
    return staging_path


def remove_staging_file(path: Optional[Path]) -> None:
    """Delete a staging artifact if it still exists."""
    if path is None:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(
            "Failed to delete staging file",
            extra={"staging_path": str(path), "error": str(e)}
        )


def directory_sources(directory: Path, extensions: tuple[str, ...] = (".jpg", ".jpeg")) -> list[FileMediaSource]:
    """Sources for every matching file under a directory, in name order."""
    matches = [
        path for path in sorted(Path(directory).rglob("*"))
        if path.is_file() and path.suffix.lower() in extensions
    ]
    return [FileMediaSource(path) for path in matches]
