"""Inbox repository for captured items and their processing state.

``inbox_items.details`` is stored as loose JSON but never leaves this module
loosely typed: ``decode_details`` turns it into one of the ``schemas``
variants and ``encode_details`` writes it back.

Stored shapes:
    NULL / {}                                            -> EmptyDetails
    {"status": "pending_approval",
     "intelligent_processing": {...}, "processed_at": iso} -> PendingApprovalDetails
    {"status": "processed", "processed_at": iso}        -> ProcessedDetails

Any other shape (legacy or unknown status, or a malformed processed payload)
decodes as EmptyDetails.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import missing_processing_data
from models import InboxItem, InboxItemStatus
from repositories.utils import log_slow_query
from schemas import (
    EmptyDetails,
    InboxFilters,
    InboxItemDetails,
    ProcessedDetails,
)

PENDING_APPROVAL = "pending_approval"

_details_adapter: TypeAdapter[InboxItemDetails] = TypeAdapter(InboxItemDetails)


def decode_details(
    raw: dict[str, Any] | None, *, item_id: str | None = None
) -> InboxItemDetails:
    """Decode a stored details payload into its tagged variant.

    Raises:
        AppError: MISSING_PROCESSING_DATA when the payload is flagged
            pending_approval but carries no usable processing result.
    """
    if not raw:
        return EmptyDetails()

    status = raw.get("status")
    if status == PENDING_APPROVAL:
        if raw.get("intelligent_processing") is None:
            raise missing_processing_data(
                f"Inbox item {item_id} is pending approval "
                "but has no processing result"
            )
        try:
            return _details_adapter.validate_python(raw)
        except ValidationError as e:
            raise missing_processing_data(
                f"Inbox item {item_id} has a malformed processing result"
            ) from e

    if status == "processed":
        try:
            return _details_adapter.validate_python(raw)
        except ValidationError:
            return EmptyDetails()

    return EmptyDetails()


def encode_details(details: InboxItemDetails) -> dict[str, Any] | None:
    if isinstance(details, EmptyDetails):
        return None
    return details.model_dump(mode="json")


class InboxRepository:
    """Repository for InboxItem database operations.

    Every query is scoped by ``user_id``; an item owned by someone else
    behaves exactly like a missing one.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("inbox.create")
    async def create(self, user_id: str, raw_text: str) -> InboxItem:
        item = InboxItem(
            user_id=user_id,
            raw_text=raw_text,
            status=InboxItemStatus.UNPROCESSED,
        )
        self.db.add(item)
        await self.db.flush()
        return item

    @log_slow_query("inbox.get_by_id")
    async def get_by_id(self, user_id: str, item_id: str) -> InboxItem | None:
        result = await self.db.execute(
            select(InboxItem).where(
                InboxItem.id == item_id,
                InboxItem.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    @log_slow_query("inbox.list_by_status")
    async def list_by_status(
        self, user_id: str, statuses: list[InboxItemStatus]
    ) -> list[InboxItem]:
        """Get a user's items in the given statuses, newest first."""
        result = await self.db.execute(
            select(InboxItem)
            .where(
                InboxItem.user_id == user_id,
                InboxItem.status.in_(statuses),
            )
            .order_by(InboxItem.created_at.desc())
        )
        return list(result.scalars().all())

    @log_slow_query("inbox.list_items")
    async def list_items(self, user_id: str, filters: InboxFilters) -> list[InboxItem]:
        query = select(InboxItem).where(InboxItem.user_id == user_id)

        if filters.status:
            query = query.where(InboxItem.status.in_(filters.status))
        if filters.has_ai_suggestions is not None:
            details_status = func.coalesce(InboxItem.details["status"].as_string(), "")
            if filters.has_ai_suggestions:
                query = query.where(details_status == PENDING_APPROVAL)
            else:
                query = query.where(details_status != PENDING_APPROVAL)
        if filters.search:
            query = query.where(InboxItem.raw_text.ilike(f"%{filters.search}%"))
        if filters.created_after:
            query = query.where(InboxItem.created_at >= filters.created_after)
        if filters.created_before:
            query = query.where(InboxItem.created_at <= filters.created_before)

        result = await self.db.execute(
            query.order_by(InboxItem.created_at.desc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        return list(result.scalars().all())

    @log_slow_query("inbox.update_details")
    async def update_details(
        self, user_id: str, item_id: str, details: InboxItemDetails
    ) -> InboxItem | None:
        """Replace an item's details. Last write wins."""
        item = await self.get_by_id(user_id, item_id)
        if item is None:
            return None

        item.details = encode_details(details)
        item.version += 1
        await self.db.flush()
        return item

    @log_slow_query("inbox.update_status")
    async def update_status(
        self, user_id: str, item_id: str, status: InboxItemStatus
    ) -> InboxItem | None:
        item = await self.get_by_id(user_id, item_id)
        if item is None:
            return None

        item.status = status
        if status == InboxItemStatus.PROCESSED and item.processed_at is None:
            item.processed_at = datetime.now(UTC)
        item.version += 1
        await self.db.flush()
        return item

    @log_slow_query("inbox.mark_as_processed")
    async def mark_as_processed(
        self,
        user_id: str,
        item_id: str,
        *,
        created_task_id: str | None = None,
        expected_version: int | None = None,
    ) -> InboxItem | None:
        """Move an item to its terminal processed state.

        When ``expected_version`` is given the update only applies if the
        stored version still matches. Returns None when no row was updated
        (missing item or stale version).
        """
        now = datetime.now(UTC)
        conditions = [InboxItem.id == item_id, InboxItem.user_id == user_id]
        if expected_version is not None:
            conditions.append(InboxItem.version == expected_version)

        result = await self.db.execute(
            update(InboxItem)
            .where(*conditions)
            .values(
                status=InboxItemStatus.PROCESSED,
                processed_at=now,
                created_task_id=created_task_id,
                details=encode_details(ProcessedDetails(processed_at=now)),
                version=InboxItem.version + 1,
            )
            .returning(InboxItem)
            .execution_options(synchronize_session="fetch")
        )
        return result.scalar_one_or_none()

    @log_slow_query("inbox.delete")
    async def delete(self, user_id: str, item_id: str) -> bool:
        result = await self.db.execute(
            delete(InboxItem).where(
                InboxItem.id == item_id,
                InboxItem.user_id == user_id,
            )
        )
        return result.rowcount > 0

    @log_slow_query("inbox.bulk_update_status")
    async def bulk_update_status(
        self, user_id: str, item_ids: list[str], status: InboxItemStatus
    ) -> list[InboxItem]:
        result = await self.db.execute(
            update(InboxItem)
            .where(
                InboxItem.id.in_(item_ids),
                InboxItem.user_id == user_id,
            )
            .values(status=status, version=InboxItem.version + 1)
            .returning(InboxItem)
            .execution_options(synchronize_session="fetch")
        )
        return list(result.scalars().all())

    @log_slow_query("inbox.bulk_delete")
    async def bulk_delete(self, user_id: str, item_ids: list[str]) -> int:
        result = await self.db.execute(
            delete(InboxItem).where(
                InboxItem.id.in_(item_ids),
                InboxItem.user_id == user_id,
            )
        )
        return result.rowcount

    @log_slow_query("inbox.get_stats")
    async def count_by_status(self, user_id: str) -> dict[InboxItemStatus, int]:
        result = await self.db.execute(
            select(InboxItem.status, func.count(InboxItem.id))
            .where(InboxItem.user_id == user_id)
            .group_by(InboxItem.status)
        )
        return {status: count for status, count in result.all()}