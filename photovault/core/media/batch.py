"""
Batch coordinator.

Drives the upload engine over a list of sources, strictly one at a time and
in input order. Item failures are recorded and the batch moves on; the
failed sources come back in BatchResult.failed_items so the caller can
retry exactly those. A permission failure is different: the credentials
are wrong for every remaining item too, so the batch stops there.

Each item gets its own timeout (asyncio.wait_for). The engine has none.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .cancellation import CancellationToken
from .engine import UploadEngine
from .errors import NotAuthenticatedError
from .models import (
    BatchItem,
    BatchProgress,
    BatchResult,
    ErrorKind,
    ItemStatus,
    Session,
    TerminalOutcome,
    UploadError,
    UploadInProgress,
    UploadSuccess,
)
from .sources import MediaSource
from .timestamps import TimestampExtractor

logger = logging.getLogger(__name__)

DEFAULT_ITEM_TIMEOUT_SECONDS = 120.0

BatchProgressCallback = Callable[[BatchProgress], None]


class BatchCoordinator:
    """
    Sequential multi-item uploads with retry of failures.

    state holds the result of the most recent batch. Starting a new batch
    replaces it.
    """

    def __init__(
        self,
        engine: UploadEngine,
        extractor: TimestampExtractor,
        timeout_seconds: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._engine = engine
        self._extractor = extractor
        self._timeout = timeout_seconds
        self.state: Optional[BatchResult] = None

    async def upload_batch(
        self,
        items: Sequence[MediaSource],
        session: Optional[Session],
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[BatchProgressCallback] = None,
    ) -> BatchResult:
        """
        Upload items under the session's prefix.

        Raises NotAuthenticatedError before touching any item when there is
        no usable session. Everything else ends up in the returned result.
        """
        if session is None or not session.prefix:
            raise NotAuthenticatedError("No signed-in user")

        token = cancel_token or CancellationToken()
        result = BatchResult(items=[BatchItem(source=source) for source in items])
        self.state = result
        total = len(result.items)

        logger.info("Starting batch upload", extra={"prefix": session.prefix, "count": total})

        try:
            for index, item in enumerate(result.items):
                if token.is_cancelled:
                    result.cancelled = True
                    self._leave_pending(result, index)
                    break

                outcome = await self._run_item(result, index, item, session, token, on_progress)
                self._record(result, item, outcome)

                if item.status == ItemStatus.CANCELLED:
                    result.cancelled = True
                    self._leave_pending(result, index + 1)
                    break

                if isinstance(outcome, UploadError) and outcome.kind == ErrorKind.PERMISSION_DENIED:
                    result.aborted_reason = outcome
                    logger.error(
                        "Aborting batch: storage permission denied",
                        extra={"identifier": item.identifier, "error": outcome.message}
                    )
                    self._leave_pending(result, index + 1)
                    break
        finally:
            result.finished_at = datetime.now(timezone.utc)

        logger.info(
            "Batch upload finished",
            extra={
                "uploaded": result.uploaded_count,
                "skipped": result.skipped_count,
                "failed": result.failed_count,
                "pending": len(result.pending_items),
                "cancelled": result.cancelled,
            }
        )
        return result

    async def retry_failed(
        self,
        session: Optional[Session],
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[BatchProgressCallback] = None,
    ) -> BatchResult:
        """Run a new batch over the previous batch's failed items."""
        previous = self.state.failed_items if self.state is not None else []
        return await self.upload_batch(
            list(previous),
            session,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def _run_item(
        self,
        result: BatchResult,
        index: int,
        item: BatchItem,
        session: Session,
        token: CancellationToken,
        on_progress: Optional[BatchProgressCallback],
    ) -> TerminalOutcome:
        item.status = ItemStatus.UPLOADING
        total = len(result.items)

        def emit(update: Optional[UploadInProgress]) -> None:
            if on_progress is None:
                return
            on_progress(BatchProgress(
                current_index=index,
                total_count=total,
                current_identifier=item.identifier,
                uploaded_count=result.uploaded_count,
                skipped_count=result.skipped_count,
                failed_count=result.failed_count,
                item_progress=update,
            ))

        emit(None)

        timestamp_info = await asyncio.to_thread(self._extractor.extract, item.source)
        item.key = self._engine.key_for(session.prefix, timestamp_info)

        try:
            return await asyncio.wait_for(
                self._engine.upload_one(
                    item.source,
                    session.prefix,
                    timestamp_info,
                    progress=emit,
                    cancel_token=token,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Upload timed out",
                extra={"identifier": item.identifier, "timeout_seconds": self._timeout}
            )
            return UploadError(
                kind=ErrorKind.TIMEOUT,
                message=f"Upload timed out after {self._timeout:g} seconds",
            )

    @staticmethod
    def _record(result: BatchResult, item: BatchItem, outcome: TerminalOutcome) -> None:
        item.outcome = outcome

        if isinstance(outcome, UploadSuccess):
            if outcome.was_skipped_as_duplicate:
                item.status = ItemStatus.SKIPPED
                result.skipped_count += 1
            else:
                item.status = ItemStatus.SUCCEEDED
                result.uploaded_count += 1
            return

        if outcome.kind == ErrorKind.CANCELLED:
            # interrupted, not failed: goes back to pending, counted nowhere
            item.status = ItemStatus.CANCELLED
            result.pending_items.append(item.source)
            return

        item.status = ItemStatus.FAILED
        result.failed_items.append(item.source)
        logger.warning(
            "Item upload failed",
            extra={"identifier": item.identifier, "kind": outcome.kind.value, "error": outcome.message}
        )

    @staticmethod
    def _leave_pending(result: BatchResult, start: int) -> None:
        for item in result.items[start:]:
            result.pending_items.append(item.source)
