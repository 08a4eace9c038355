"""Inbox capture and HITL approval endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response
from starlette import status

from core.auth import UserId
from core.database import DbSession
from core.ratelimit import APPROVAL_LIMIT, CAPTURE_LIMIT, limiter
from schemas import (
    ApprovalRequest,
    ApprovalResult,
    BulkProcessRequest,
    BulkProcessResult,
    CaptureRequest,
    CaptureResult,
    InboxFilters,
    InboxItemResponse,
    InboxStats,
    MarkProcessedRequest,
    PendingApprovalItem,
    QueueStats,
    QuickCaptureRequest,
    UpdateInboxItemRequest,
    VoiceCaptureRequest,
)
from services import inbox_approval_service, inbox_service
from services.inbox_queue_service import InboxProcessingQueue

router = APIRouter(prefix="/api/inbox", tags=["inbox"])

_ERROR_RESPONSES: dict[int | str, dict] = {
    401: {"description": "Not authenticated"},
    404: {"description": "Inbox item not found"},
}


def get_inbox_queue(request: Request) -> InboxProcessingQueue:
    return request.app.state.inbox_queue


InboxQueue = Annotated[InboxProcessingQueue, Depends(get_inbox_queue)]


@router.post(
    "/capture",
    response_model=CaptureResult,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"description": "Not authenticated"}},
)
@limiter.limit(CAPTURE_LIMIT)
async def capture(
    request: Request,
    body: CaptureRequest,
    user_id: UserId,
    db: DbSession,
    queue: InboxQueue,
) -> CaptureResult:
    """Capture raw text and queue it for intelligent processing."""
    return await inbox_service.capture_inbox_item(db, queue, user_id, body)


@router.post(
    "/quick-capture",
    response_model=InboxItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"description": "Not authenticated"}},
)
@limiter.limit(CAPTURE_LIMIT)
async def quick_capture(
    request: Request, body: QuickCaptureRequest, user_id: UserId, db: DbSession
) -> InboxItemResponse:
    return await inbox_service.quick_capture(db, user_id, body.raw_text)


@router.post(
    "/voice-capture",
    response_model=InboxItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"description": "Not authenticated"}},
)
@limiter.limit(CAPTURE_LIMIT)
async def voice_capture(
    request: Request, body: VoiceCaptureRequest, user_id: UserId, db: DbSession
) -> InboxItemResponse:
    return await inbox_service.voice_capture(db, user_id, body)


@router.get("", response_model=list[InboxItemResponse])
@limiter.limit("60/minute")
async def list_items(
    request: Request,
    user_id: UserId,
    db: DbSession,
    filters: Annotated[InboxFilters, Query()],
) -> list[InboxItemResponse]:
    """List inbox items, newest first."""
    return await inbox_service.list_inbox_items(db, user_id, filters)


@router.get("/stats", response_model=InboxStats)
@limiter.limit("60/minute")
async def stats(request: Request, user_id: UserId, db: DbSession) -> InboxStats:
    return await inbox_service.get_inbox_stats(db, user_id)


@router.get("/queue/stats", response_model=QueueStats)
@limiter.limit("60/minute")
async def queue_stats(
    request: Request, user_id: UserId, queue: InboxQueue
) -> QueueStats:
    return queue.get_queue_stats()


@router.post("/bulk", response_model=BulkProcessResult)
@limiter.limit(APPROVAL_LIMIT)
async def bulk(
    request: Request,
    body: BulkProcessRequest,
    user_id: UserId,
    db: DbSession,
    queue: InboxQueue,
) -> BulkProcessResult:
    """Archive, delete or queue several items at once."""
    return await inbox_service.bulk_process(db, queue, user_id, body)


@router.get(
    "/approvals/pending",
    response_model=list[PendingApprovalItem],
    responses={401: {"description": "Not authenticated"}},
)
@limiter.limit("60/minute")
async def pending_approvals(
    request: Request, user_id: UserId, db: DbSession
) -> list[PendingApprovalItem]:
    """Items whose AI breakdown is waiting for review."""
    return await inbox_approval_service.get_pending_approval_items(db, user_id)


@router.post(
    "/approvals",
    response_model=ApprovalResult,
    responses={
        **_ERROR_RESPONSES,
        409: {"description": "Item already approved by a concurrent request"},
    },
)
@limiter.limit(APPROVAL_LIMIT)
async def approve(
    request: Request, body: ApprovalRequest, user_id: UserId, db: DbSession
) -> ApprovalResult:
    """Create the approved projects and tasks for one inbox item."""
    return await inbox_approval_service.process_approved_items(db, user_id, body)


@router.get("/{item_id}", response_model=InboxItemResponse, responses=_ERROR_RESPONSES)
@limiter.limit("60/minute")
async def get_item(
    request: Request, item_id: str, user_id: UserId, db: DbSession
) -> InboxItemResponse:
    return await inbox_service.get_inbox_item(db, user_id, item_id)


@router.patch(
    "/{item_id}", response_model=InboxItemResponse, responses=_ERROR_RESPONSES
)
@limiter.limit("30/minute")
async def update_item(
    request: Request,
    item_id: str,
    body: UpdateInboxItemRequest,
    user_id: UserId,
    db: DbSession,
) -> InboxItemResponse:
    return await inbox_service.update_inbox_item(db, user_id, item_id, body.status)


@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
)
@limiter.limit("30/minute")
async def delete_item(
    request: Request, item_id: str, user_id: UserId, db: DbSession
) -> Response:
    await inbox_service.delete_inbox_item(db, user_id, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{item_id}/processed",
    response_model=InboxItemResponse,
    responses=_ERROR_RESPONSES,
)
@limiter.limit("30/minute")
async def mark_processed(
    request: Request,
    item_id: str,
    body: MarkProcessedRequest,
    user_id: UserId,
    db: DbSession,
) -> InboxItemResponse:
    """Mark an item handled manually, optionally linking the task it became."""
    return await inbox_service.mark_as_processed(
        db, user_id, item_id, body.created_task_id
    )


@router.post(
    "/{item_id}/reject",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
)
@limiter.limit(APPROVAL_LIMIT)
async def reject(
    request: Request, item_id: str, user_id: UserId, db: DbSession
) -> Response:
    """Discard the AI breakdown and return the item to manual handling."""
    await inbox_approval_service.reject_intelligent_processing(db, user_id, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
