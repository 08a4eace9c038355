"""Inbox capture and management.

Capture always persists the raw text first. Intelligent processing is only
ever scheduled (see services.inbox_queue_service); an unavailable AI provider
changes the response message but never fails a capture.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger, mask_user_id
from core.errors import (
    AIUnavailableError,
    AppError,
    ErrorCategory,
    ErrorCode,
    database_error,
    not_found,
)
from core.metrics import AI_UNAVAILABLE_COUNTER, INBOX_CAPTURE_COUNTER
from core.telemetry import add_custom_attribute, track_operation
from models import InboxItem, InboxItemStatus
from repositories.inbox_repository import InboxRepository, decode_details
from schemas import (
    BulkProcessRequest,
    BulkProcessResult,
    CaptureRequest,
    CaptureResult,
    EmptyDetails,
    InboxFilters,
    InboxItemResponse,
    InboxStats,
    VoiceCaptureRequest,
)
from services.inbox_queue_service import InboxProcessingQueue
from services.intelligent_processing_service import assert_ai_available

logger = get_logger(__name__)

MANUAL_MESSAGE = "Item captured. Categorize it manually from your inbox."
QUEUED_MESSAGE = "Item captured and queued for intelligent processing."
AI_UNAVAILABLE_MESSAGE = (
    "Item captured and queued for processing when AI becomes available."
)


async def _create_item(
    db: AsyncSession, user_id: str, raw_text: str, source: str
) -> InboxItem:
    repo = InboxRepository(db)
    try:
        return await repo.create(user_id, raw_text)
    except Exception as e:
        logger.error(
            "inbox.capture.failed",
            user_id=mask_user_id(user_id),
            source=source,
            error=str(e),
        )
        raise database_error("Failed to capture inbox item") from e


@track_operation("inbox_capture")
async def capture_inbox_item(
    db: AsyncSession,
    queue: InboxProcessingQueue,
    user_id: str,
    request: CaptureRequest,
) -> CaptureResult:
    """Capture raw text and schedule intelligent processing.

    The raw text is stored exactly as given. When processing is enabled the
    item is queued even if the AI provider is currently unavailable; the
    background worker picks it up once the provider is back.
    """
    item = await _create_item(db, user_id, request.raw_text, "capture")
    inbox_item = InboxItemResponse.model_validate(item)
    add_custom_attribute("inbox.item_id", item.id)

    logger.info(
        "inbox.capture.created",
        user_id=mask_user_id(user_id),
        inbox_item_id=item.id,
        text_length=len(request.raw_text),
        intelligent_processing=request.enable_intelligent_processing,
        priority=request.priority,
    )

    if not request.enable_intelligent_processing:
        INBOX_CAPTURE_COUNTER.add(1, {"queued": False})
        return CaptureResult(inbox_item=inbox_item, queued=False, message=MANUAL_MESSAGE)

    message = QUEUED_MESSAGE
    try:
        assert_ai_available()
    except AIUnavailableError as e:
        AI_UNAVAILABLE_COUNTER.add(1)
        logger.warning(
            "inbox.capture.ai_unavailable",
            user_id=mask_user_id(user_id),
            inbox_item_id=item.id,
            reason=e.message,
        )
        message = AI_UNAVAILABLE_MESSAGE

    queue.enqueue(user_id, item.id, item.raw_text, request.priority)
    INBOX_CAPTURE_COUNTER.add(1, {"queued": True})

    return CaptureResult(
        inbox_item=inbox_item,
        queued=True,
        message=message,
        queue_stats=queue.get_queue_stats(),
    )


@track_operation("inbox_quick_capture")
async def quick_capture(
    db: AsyncSession, user_id: str, raw_text: str
) -> InboxItemResponse:
    """Capture without intelligent processing."""
    item = await _create_item(db, user_id, raw_text, "quick_capture")
    INBOX_CAPTURE_COUNTER.add(1, {"queued": False})
    logger.info(
        "inbox.quick_capture.created",
        user_id=mask_user_id(user_id),
        inbox_item_id=item.id,
        text_length=len(raw_text),
    )
    return InboxItemResponse.model_validate(item)


@track_operation("inbox_voice_capture")
async def voice_capture(
    db: AsyncSession, user_id: str, request: VoiceCaptureRequest
) -> InboxItemResponse:
    """Capture a voice transcription as a plain inbox item."""
    item = await _create_item(db, user_id, request.transcription, "voice_capture")
    INBOX_CAPTURE_COUNTER.add(1, {"queued": False})

    audio = request.audio_metadata
    logger.info(
        "inbox.voice_capture.created",
        user_id=mask_user_id(user_id),
        inbox_item_id=item.id,
        confidence=request.confidence,
        audio_quality=audio.quality if audio else None,
        audio_duration=audio.duration if audio else None,
    )
    return InboxItemResponse.model_validate(item)


async def list_inbox_items(
    db: AsyncSession, user_id: str, filters: InboxFilters
) -> list[InboxItemResponse]:
    repo = InboxRepository(db)
    try:
        items = await repo.list_items(user_id, filters)
    except Exception as e:
        logger.error(
            "inbox.list.failed", user_id=mask_user_id(user_id), error=str(e)
        )
        raise database_error("Failed to list inbox items") from e
    return [InboxItemResponse.model_validate(item) for item in items]


async def get_inbox_item(
    db: AsyncSession, user_id: str, item_id: str
) -> InboxItemResponse:
    repo = InboxRepository(db)
    item = await repo.get_by_id(user_id, item_id)
    if item is None:
        raise not_found(f"Inbox item {item_id} not found")
    return InboxItemResponse.model_validate(item)


async def update_inbox_item(
    db: AsyncSession, user_id: str, item_id: str, status: InboxItemStatus
) -> InboxItemResponse:
    """Change an item's status. The captured text itself is immutable."""
    repo = InboxRepository(db)
    item = await repo.update_status(user_id, item_id, status)
    if item is None:
        raise not_found(f"Inbox item {item_id} not found")

    logger.info(
        "inbox.item.updated",
        user_id=mask_user_id(user_id),
        inbox_item_id=item_id,
        status=status.value,
    )
    return InboxItemResponse.model_validate(item)


async def delete_inbox_item(db: AsyncSession, user_id: str, item_id: str) -> None:
    repo = InboxRepository(db)
    deleted = await repo.delete(user_id, item_id)
    if not deleted:
        raise not_found(f"Inbox item {item_id} not found")

    logger.info(
        "inbox.item.deleted", user_id=mask_user_id(user_id), inbox_item_id=item_id
    )


async def mark_as_processed(
    db: AsyncSession,
    user_id: str,
    item_id: str,
    created_task_id: str | None = None,
) -> InboxItemResponse:
    """Mark an item processed by hand, optionally linking the task it became."""
    repo = InboxRepository(db)
    item = await repo.mark_as_processed(
        user_id, item_id, created_task_id=created_task_id
    )
    if item is None:
        raise not_found(f"Inbox item {item_id} not found")
    return InboxItemResponse.model_validate(item)


async def get_inbox_stats(db: AsyncSession, user_id: str) -> InboxStats:
    repo = InboxRepository(db)
    counts = await repo.count_by_status(user_id)

    return InboxStats(
        unprocessed=counts.get(InboxItemStatus.UNPROCESSED, 0),
        processed=counts.get(InboxItemStatus.PROCESSED, 0),
        archived=counts.get(InboxItemStatus.ARCHIVED, 0),
        total=sum(counts.values()),
    )


@track_operation("inbox_bulk_process")
async def bulk_process(
    db: AsyncSession,
    queue: InboxProcessingQueue,
    user_id: str,
    request: BulkProcessRequest,
) -> BulkProcessResult:
    """Archive, delete or queue several items at once.

    ``process`` only queues items that are still unprocessed and carry no
    result awaiting review; others are silently ignored.
    """
    repo = InboxRepository(db)

    try:
        if request.action == "archive":
            items = await repo.bulk_update_status(
                user_id, request.item_ids, InboxItemStatus.ARCHIVED
            )
            result = BulkProcessResult(
                action=request.action,
                processed=[InboxItemResponse.model_validate(i) for i in items],
                affected_count=len(items),
            )
        elif request.action == "delete":
            deleted = await repo.bulk_delete(user_id, request.item_ids)
            result = BulkProcessResult(action=request.action, affected_count=deleted)
        elif request.action == "process":
            queued_ids: list[str] = []
            for item_id in request.item_ids:
                item = await repo.get_by_id(user_id, item_id)
                if item is None or item.status != InboxItemStatus.UNPROCESSED:
                    continue
                try:
                    details = decode_details(item.details, item_id=item.id)
                except AppError:
                    # Flagged for review but unreadable; left for manual handling.
                    continue
                if not isinstance(details, EmptyDetails):
                    continue
                if queue.enqueue(user_id, item.id, item.raw_text, request.priority):
                    queued_ids.append(item.id)
            result = BulkProcessResult(
                action=request.action,
                affected_count=len(queued_ids),
                queued_ids=queued_ids,
            )
        else:
            raise AppError(
                f"Invalid bulk action: {request.action}",
                ErrorCode.INVALID_BULK_ACTION,
                ErrorCategory.VALIDATION,
                status_code=422,
            )
    except AppError:
        raise
    except Exception as e:
        logger.error(
            "inbox.bulk.failed",
            user_id=mask_user_id(user_id),
            action=request.action,
            error=str(e),
        )
        raise database_error("Failed to bulk process inbox items") from e

    logger.info(
        "inbox.bulk.completed",
        user_id=mask_user_id(user_id),
        action=request.action,
        requested_count=len(request.item_ids),
        affected_count=result.affected_count,
    )
    return result
