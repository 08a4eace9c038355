"""Background queue for intelligent inbox processing.

Captures are handed off here and processed after the request returns. The
queue is per-process in-memory state owned by the app (``app.state.inbox_queue``);
queued jobs do not survive a restart; the items themselves stay in the inbox
as unprocessed and can be re-queued with a bulk ``process`` action.

Ordering: high before medium before low, FIFO within a priority.
"""

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import get_logger, mask_user_id
from core.config import get_settings
from core.errors import AIUnavailableError, AppError, ErrorCode
from core.metrics import PROCESSING_DURATION, PROCESSING_FAILURES_COUNTER
from schemas import CapturePriority, QueueStats
from services.inbox_approval_service import store_processing_result
from services.intelligent_processing_service import (
    is_ai_available,
    process_intelligently,
)

logger = get_logger(__name__)

_PRIORITY_RANK: dict[str, int] = {"high": 0, "medium": 1, "low": 2}


@dataclass
class QueuedCapture:
    """One capture waiting for intelligent processing."""

    user_id: str
    item_id: str
    raw_text: str
    priority: CapturePriority = "medium"
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0
    sequence: int = 0


class InboxProcessingQueue:
    """Priority queue of captures, deduplicated by inbox item id."""

    def __init__(self) -> None:
        self._heap: list[tuple[int, int, QueuedCapture]] = []
        self._queued_ids: set[str] = set()
        self._counter = itertools.count()
        self._not_empty = asyncio.Event()

    def __len__(self) -> int:
        return len(self._heap)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._queued_ids

    def enqueue(
        self,
        user_id: str,
        item_id: str,
        raw_text: str,
        priority: CapturePriority = "medium",
    ) -> bool:
        """Queue a capture. Returns False if the item is already queued."""
        if item_id in self._queued_ids:
            return False

        job = QueuedCapture(
            user_id=user_id,
            item_id=item_id,
            raw_text=raw_text,
            priority=priority,
            sequence=next(self._counter),
        )
        self._push(job)
        logger.debug(
            "inbox.queue.enqueued",
            user_id=mask_user_id(user_id),
            item_id=item_id,
            priority=priority,
        )
        return True

    def requeue(self, job: QueuedCapture, *, count_attempt: bool = True) -> None:
        """Put a job back in its original position."""
        if job.item_id in self._queued_ids:
            return
        if count_attempt:
            job.attempts += 1
        self._push(job)

    def dequeue(self) -> QueuedCapture | None:
        if not self._heap:
            return None
        _, _, job = heapq.heappop(self._heap)
        self._queued_ids.discard(job.item_id)
        if not self._heap:
            self._not_empty.clear()
        return job

    async def wait_for_job(self, timeout: float) -> None:
        """Block until something is queued or ``timeout`` seconds pass."""
        try:
            async with asyncio.timeout(timeout):
                await self._not_empty.wait()
        except TimeoutError:
            pass

    def get_queue_stats(self) -> QueueStats:
        counts = {"high": 0, "medium": 0, "low": 0}
        oldest: datetime | None = None
        for _, _, job in self._heap:
            counts[job.priority] += 1
            if oldest is None or job.enqueued_at < oldest:
                oldest = job.enqueued_at

        return QueueStats(
            total_queued=len(self._heap),
            high_priority=counts["high"],
            medium_priority=counts["medium"],
            low_priority=counts["low"],
            oldest_queued=oldest,
        )

    def _push(self, job: QueuedCapture) -> None:
        heapq.heappush(self._heap, (_PRIORITY_RANK[job.priority], job.sequence, job))
        self._queued_ids.add(job.item_id)
        self._not_empty.set()


async def process_queued_capture(
    session_maker: async_sessionmaker[AsyncSession],
    queue: InboxProcessingQueue,
    job: QueuedCapture,
) -> bool:
    """Run AI processing for one job and store the result for approval.

    Opens its own short-lived session. Returns True when the result was
    stored. Failed jobs are requeued until ``inbox_max_processing_attempts``
    is reached, then dropped; the item stays unprocessed in the inbox.
    """
    settings = get_settings()
    log = logger.bind(user_id=mask_user_id(job.user_id), item_id=job.item_id)
    start_time = time.perf_counter()

    try:
        result = await process_intelligently(job.raw_text)
        async with session_maker() as db:
            await store_processing_result(db, job.user_id, job.item_id, result)
            await db.commit()
    except AIUnavailableError:
        # Does not count as an attempt.
        log.info("inbox.worker.ai_unavailable")
        queue.requeue(job, count_attempt=False)
        return False
    except AppError as e:
        if e.code == ErrorCode.PROCESSING_RESULT_EXISTS:
            log.info("inbox.worker.result_exists")
            return False
        # Captures are enqueued before their session commits; NOT_FOUND retries.
        return _handle_failure(queue, job, e, settings.inbox_max_processing_attempts)
    except Exception as e:
        return _handle_failure(queue, job, e, settings.inbox_max_processing_attempts)
    finally:
        PROCESSING_DURATION.record(time.perf_counter() - start_time)

    log.info(
        "inbox.worker.processed",
        task_count=len(result.extracted_tasks),
        project_count=len(result.suggested_projects),
        overall_confidence=result.overall_confidence,
    )
    return True


def _handle_failure(
    queue: InboxProcessingQueue,
    job: QueuedCapture,
    error: Exception,
    max_attempts: int,
) -> bool:
    PROCESSING_FAILURES_COUNTER.add(1, {"error_type": type(error).__name__})
    attempt = job.attempts + 1
    if attempt >= max_attempts:
        logger.error(
            "inbox.worker.dropped",
            user_id=mask_user_id(job.user_id),
            item_id=job.item_id,
            attempts=attempt,
            error=str(error),
            error_type=type(error).__name__,
        )
        return False

    logger.warning(
        "inbox.worker.retrying",
        user_id=mask_user_id(job.user_id),
        item_id=job.item_id,
        attempt=attempt,
        error=str(error),
        error_type=type(error).__name__,
    )
    queue.requeue(job)
    return False


async def inbox_processing_loop(
    session_maker: async_sessionmaker[AsyncSession],
    queue: InboxProcessingQueue,
) -> None:
    """Background loop that drains the processing queue.

    Runs forever until cancelled. While the AI provider is unavailable jobs
    stay queued and the loop sleeps for ``inbox_worker_poll_seconds``.
    """
    poll_seconds = get_settings().inbox_worker_poll_seconds
    while True:
        if not is_ai_available():
            await asyncio.sleep(poll_seconds)
            continue

        job = queue.dequeue()
        if job is None:
            await queue.wait_for_job(poll_seconds)
            continue

        try:
            await process_queued_capture(session_maker, queue, job)
        except Exception:
            logger.exception("inbox.worker.unexpected_failure", item_id=job.item_id)
