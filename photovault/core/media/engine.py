"""
Single-item upload engine.

Each upload walks a small state machine:

    CREATED -> CHECKING_EXISTENCE -> SKIPPED
                                  -> TRANSFERRING -> COMPLETED | FAILED | CANCELLED

(FAILED and CANCELLED are also reachable before the transfer starts.)

The existence probe is what makes uploads idempotent: keys are derived from
capture time, so if the key is already populated the photo is already
stored and no bytes move. A probe that fails for any reason other than
"not found" is reported as an error; we never guess that the object is
absent.

upload_one returns exactly one terminal outcome. Progress goes through a
callback so callers can render it without polling.

Cancellation comes from two places:
- a CancellationToken shared with the batch. The engine checks it between
  chunks and races every store call and the staging copy against it, so it
  reacts without waiting for the current read or network call.
  Result: UploadError(CANCELLED).
- asyncio task cancellation, which is how the caller's timeout works. The
  engine cleans up the same way and lets CancelledError propagate.
Either way the staging file is removed and a half-finished multipart upload
is aborted.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from .cancellation import CancellationToken
from .keys import DEFAULT_EXTENSION, derive_key
from .models import (
    ErrorKind,
    TerminalOutcome,
    TimestampInfo,
    UploadError,
    UploadInProgress,
    UploadState,
    UploadSuccess,
)
from .sources import (
    FileMediaSource,
    MediaSource,
    StagingCancelled,
    copy_to_staging,
    remove_staging_file,
    staging_path_for,
)
from .store import (
    ObjectNotFoundError,
    ObjectStore,
    StorageAccessDeniedError,
    StorageError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[UploadInProgress], None]
StateListener = Callable[[UploadState], None]

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024
CANCELLED_MESSAGE = "upload canceled"

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "heic": "image/heic",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
}


class IllegalTransitionError(RuntimeError):
    """Raised when code tries to move an upload along an edge that doesn't exist."""
    pass


class UploadStateMachine:
    """
    Tracks one upload's state and enforces legal transitions.

    Terminal states are final: trying to leave one raises, which is what
    guarantees a single terminal outcome per upload.
    """

    _ALLOWED = {
        UploadState.CREATED: {
            UploadState.CHECKING_EXISTENCE,
            UploadState.FAILED,
            UploadState.CANCELLED,
        },
        UploadState.CHECKING_EXISTENCE: {
            UploadState.SKIPPED,
            UploadState.TRANSFERRING,
            UploadState.FAILED,
            UploadState.CANCELLED,
        },
        UploadState.TRANSFERRING: {
            UploadState.COMPLETED,
            UploadState.FAILED,
            UploadState.CANCELLED,
        },
    }

    def __init__(self, key: str, listener: Optional[StateListener] = None) -> None:
        self.key = key
        self.state = UploadState.CREATED
        self._listener = listener

    def advance(self, new_state: UploadState) -> None:
        allowed = self._ALLOWED.get(self.state, set())
        if new_state not in allowed:
            raise IllegalTransitionError(
                f"Cannot move upload of {self.key} from {self.state.value} to {new_state.value}"
            )

        logger.debug(
            "Upload state change",
            extra={"key": self.key, "from": self.state.value, "to": new_state.value}
        )
        self.state = new_state
        if self._listener is not None:
            self._listener(new_state)


class _Cancelled(Exception):
    """Internal signal: the token fired while we were waiting on the store."""
    pass


def _consume_result(task: "asyncio.Future") -> None:
    # abandoned store calls may still fail later; retrieve so asyncio doesn't warn
    if not task.cancelled():
        task.exception()


class UploadEngine:
    """
    Check-then-put for a single photo.

    The store handle is shared read-only across sequential calls; the engine
    itself keeps no per-upload state between calls.
    """

    def __init__(
        self,
        store: ObjectStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        staging_dir: Optional[Path] = None,
        extension: str = DEFAULT_EXTENSION,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")

        self._store = store
        self._chunk_size = chunk_size
        self._staging_dir = staging_dir
        self._extension = extension.lstrip(".")
        self._content_type = CONTENT_TYPES.get(self._extension.lower(), "application/octet-stream")
        # aborts and staging removals started while the caller is being cancelled
        self._cleanup_tasks: set[asyncio.Task] = set()

    @property
    def extension(self) -> str:
        return self._extension

    async def wait_for_cleanup(self) -> None:
        """Wait for background aborts and abandoned staging copies to finish."""
        while self._cleanup_tasks:
            await asyncio.wait(set(self._cleanup_tasks))

    def key_for(self, prefix: str, timestamp_info: TimestampInfo) -> str:
        return derive_key(prefix, timestamp_info, self._extension)

    async def upload_one(
        self,
        source: MediaSource,
        prefix: str,
        timestamp_info: TimestampInfo,
        *,
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_state: Optional[StateListener] = None,
    ) -> TerminalOutcome:
        """
        Upload one source under prefix, unless it is already there.

        Returns UploadSuccess (was_skipped_as_duplicate tells new from
        existing) or UploadError. Raises only CancelledError, when the
        surrounding task is cancelled.
        """
        token = cancel_token or CancellationToken()
        key = self.key_for(prefix, timestamp_info)
        machine = UploadStateMachine(key, on_state)
        staging_path: Optional[Path] = None

        try:
            if token.is_cancelled:
                return self._finish_cancelled(machine)

            # existence probe
            machine.advance(UploadState.CHECKING_EXISTENCE)
            try:
                await self._race(self._store.head_object(key), token)
                exists = True
            except ObjectNotFoundError:
                exists = False
            except _Cancelled:
                return self._finish_cancelled(machine)
            except StorageAccessDeniedError as e:
                return self._finish_failed(machine, ErrorKind.PERMISSION_DENIED, f"Existence check denied: {e}")
            except StorageError as e:
                return self._finish_failed(machine, ErrorKind.UNKNOWN, f"Existence check failed: {e}")

            if exists:
                machine.advance(UploadState.SKIPPED)
                url = self._store.object_url(key)
                logger.info(
                    "Skipping duplicate upload",
                    extra={"key": key, "identifier": source.identifier}
                )
                return UploadSuccess(remote_url=url, was_skipped_as_duplicate=True)

            machine.advance(UploadState.TRANSFERRING)

            upload_source: MediaSource = source
            if not source.is_byte_stable:
                staging_path = staging_path_for(self._staging_dir, self._extension)
                try:
                    await self._stage(source, staging_path, token)
                except (_Cancelled, StagingCancelled):
                    return self._finish_cancelled(machine)
                except OSError as e:
                    return self._finish_failed(machine, ErrorKind.TRANSFER_FAILED, f"Could not read source: {e}")
                upload_source = FileMediaSource(staging_path)

            return await self._transfer(machine, upload_source, progress, token)

        except asyncio.CancelledError:
            if not machine.state.is_terminal:
                machine.advance(UploadState.CANCELLED)
            logger.info("Upload task cancelled", extra={"key": key})
            raise
        finally:
            remove_staging_file(staging_path)

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    async def _transfer(
        self,
        machine: UploadStateMachine,
        source: MediaSource,
        progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> TerminalOutcome:
        key = machine.key
        total = source.size()
        sent = 0
        upload_id: Optional[str] = None

        self._emit(progress, UploadInProgress.of(0, total))

        try:
            with source.open() as handle:
                chunk = await asyncio.to_thread(handle.read, self._chunk_size)

                if len(chunk) < self._chunk_size:
                    # whole content fits in one request
                    if token.is_cancelled:
                        return self._finish_cancelled(machine)
                    await self._race(self._store.put_object(key, chunk, self._content_type), token)
                    sent = len(chunk)
                    self._emit(progress, UploadInProgress.of(sent, total))
                else:
                    upload_id = await self._race(
                        self._store.create_multipart_upload(key, self._content_type), token
                    )
                    parts: list[tuple[int, str]] = []
                    part_number = 1
                    while chunk:
                        if token.is_cancelled:
                            raise _Cancelled()
                        etag = await self._race(
                            self._store.upload_part(key, upload_id, part_number, chunk), token
                        )
                        parts.append((part_number, etag))
                        sent += len(chunk)
                        self._emit(progress, UploadInProgress.of(sent, total))

                        part_number += 1
                        chunk = await asyncio.to_thread(handle.read, self._chunk_size)

                    if token.is_cancelled:
                        raise _Cancelled()
                    await self._race(
                        self._store.complete_multipart_upload(key, upload_id, parts), token
                    )
                    upload_id = None

        except _Cancelled:
            await self._abort_quietly(key, upload_id)
            return self._finish_cancelled(machine)
        except StorageError as e:
            await self._abort_quietly(key, upload_id)
            return self._finish_failed(machine, ErrorKind.TRANSFER_FAILED, f"Upload failed: {e}")
        except OSError as e:
            await self._abort_quietly(key, upload_id)
            return self._finish_failed(machine, ErrorKind.TRANSFER_FAILED, f"Could not read source: {e}")
        except asyncio.CancelledError:
            if upload_id is not None:
                self._abort_in_background(key, upload_id)
            raise

        if total is None:
            # size was unknown up front; report the final count as complete
            self._emit(progress, UploadInProgress.of(sent, sent))

        machine.advance(UploadState.COMPLETED)
        url = self._store.object_url(key)
        logger.info(
            "Uploaded object",
            extra={"key": key, "size_bytes": sent, "identifier": source.identifier}
        )
        return UploadSuccess(remote_url=url, was_skipped_as_duplicate=False)

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    async def _stage(self, source: MediaSource, staging_path: Path, token: CancellationToken) -> None:
        """
        Copy source to staging_path in a worker thread, raced against the token.

        If the wait ends early the thread is told to stop, and staging_path
        is removed once the thread has exited (in a background task when it
        is still running), so a copy that was already finishing cannot leave
        the file behind.
        """
        stop = threading.Event()
        copy = asyncio.ensure_future(
            asyncio.to_thread(copy_to_staging, source, staging_path, stop.is_set)
        )
        try:
            await self._race(asyncio.shield(copy), token)
        except BaseException:
            stop.set()
            if copy.done():
                remove_staging_file(staging_path)
            else:
                self._discard_staging_in_background(copy, staging_path)
            raise

    def _discard_staging_in_background(self, copy: "asyncio.Future", staging_path: Path) -> None:
        async def discard() -> None:
            try:
                await copy
            except Exception as e:
                logger.debug(
                    "Abandoned staging copy stopped",
                    extra={"staging_path": str(staging_path), "error": str(e)}
                )
            finally:
                remove_staging_file(staging_path)

        task = asyncio.ensure_future(discard())
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _race(self, awaitable: Awaitable[T], token: CancellationToken) -> T:
        """
        Await a store call unless the token fires first.

        A store call that loses the race is cancelled; if it was running in
        a worker thread the thread finishes on its own and its result is
        discarded.
        """
        task = asyncio.ensure_future(awaitable)
        if token.is_cancelled:
            task.cancel()
            task.add_done_callback(_consume_result)
            raise _Cancelled()

        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            task.add_done_callback(_consume_result)
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_result)
        raise _Cancelled()

    async def _abort_quietly(self, key: str, upload_id: Optional[str]) -> None:
        if upload_id is None:
            return
        try:
            await self._store.abort_multipart_upload(key, upload_id)
        except StorageError as e:
            logger.warning(
                "Failed to abort multipart upload",
                extra={"key": key, "upload_id": upload_id, "error": str(e)}
            )

    def _abort_in_background(self, key: str, upload_id: str) -> None:
        task = asyncio.ensure_future(self._abort_quietly(key, upload_id))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    def _emit(self, progress: Optional[ProgressCallback], update: UploadInProgress) -> None:
        if progress is not None:
            progress(update)

    def _finish_cancelled(self, machine: UploadStateMachine) -> UploadError:
        machine.advance(UploadState.CANCELLED)
        logger.info("Upload cancelled", extra={"key": machine.key})
        return UploadError(kind=ErrorKind.CANCELLED, message=CANCELLED_MESSAGE)

    def _finish_failed(
        self,
        machine: UploadStateMachine,
        kind: ErrorKind,
        message: str,
    ) -> UploadError:
        machine.advance(UploadState.FAILED)
        logger.error(
            "Upload failed",
            extra={"key": machine.key, "error_kind": kind.value, "error": message}
        )
        return UploadError(kind=kind, message=message)
