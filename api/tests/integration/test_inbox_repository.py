"""Integration tests for repositories/inbox_repository.py.

Uses real PostgreSQL database with transaction rollback for isolation.
"""

from datetime import UTC, datetime, timedelta

import pytest

from models import InboxItemStatus
from repositories.inbox_repository import InboxRepository, decode_details
from schemas import EmptyDetails, InboxFilters, PendingApprovalDetails, ProcessedDetails
from tests.factories import (
    InboxItemFactory,
    PendingInboxItemFactory,
    create_async,
    kitchen_result,
)

pytestmark = pytest.mark.integration

USER_ID = "user_inbox_owner"
OTHER_USER_ID = "user_someone_else"


class TestInboxRepositoryIntegration:
    async def test_create_stores_raw_text_unchanged(self, db_session):
        repo = InboxRepository(db_session)
        raw_text = "  Plan kitchen remodel\n  - measure\n"

        item = await repo.create(USER_ID, raw_text)

        assert item.id
        assert item.raw_text == raw_text
        assert item.status == InboxItemStatus.UNPROCESSED
        assert item.details is None
        assert item.version == 1

    async def test_get_by_id_is_scoped_to_user(self, db_session):
        item = await create_async(InboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)

        assert (await repo.get_by_id(USER_ID, item.id)).id == item.id
        assert await repo.get_by_id(OTHER_USER_ID, item.id) is None

    async def test_list_by_status_newest_first(self, db_session):
        now = datetime.now(UTC)
        older = await create_async(
            InboxItemFactory, db_session, user_id=USER_ID, created_at=now - timedelta(1)
        )
        newer = await create_async(
            InboxItemFactory, db_session, user_id=USER_ID, created_at=now
        )
        await create_async(
            InboxItemFactory,
            db_session,
            user_id=USER_ID,
            status=InboxItemStatus.ARCHIVED,
        )
        await create_async(InboxItemFactory, db_session, user_id=OTHER_USER_ID)

        repo = InboxRepository(db_session)
        items = await repo.list_by_status(USER_ID, [InboxItemStatus.UNPROCESSED])

        assert [i.id for i in items] == [newer.id, older.id]

    async def test_list_items_filters_ai_suggestions(self, db_session):
        pending = await create_async(PendingInboxItemFactory, db_session, user_id=USER_ID)
        manual = await create_async(InboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)

        with_ai = await repo.list_items(USER_ID, InboxFilters(has_ai_suggestions=True))
        without_ai = await repo.list_items(
            USER_ID, InboxFilters(has_ai_suggestions=False)
        )

        assert [i.id for i in with_ai] == [pending.id]
        assert [i.id for i in without_ai] == [manual.id]

    async def test_list_items_search_and_pagination(self, db_session):
        now = datetime.now(UTC)
        for offset in range(3):
            await create_async(
                InboxItemFactory,
                db_session,
                user_id=USER_ID,
                raw_text=f"Buy milk #{offset}",
                created_at=now - timedelta(minutes=offset),
            )
        await create_async(
            InboxItemFactory, db_session, user_id=USER_ID, raw_text="Call plumber"
        )
        repo = InboxRepository(db_session)

        page = await repo.list_items(
            USER_ID, InboxFilters(search="MILK", limit=2, offset=1)
        )

        assert [i.raw_text for i in page] == ["Buy milk #1", "Buy milk #2"]

    async def test_update_details_round_trip_and_version(self, db_session):
        item = await create_async(InboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)
        details = PendingApprovalDetails(
            intelligent_processing=kitchen_result(), processed_at=datetime.now(UTC)
        )

        updated = await repo.update_details(USER_ID, item.id, details)

        assert updated.version == 2
        decoded = decode_details(updated.details)
        assert isinstance(decoded, PendingApprovalDetails)
        assert decoded.intelligent_processing == kitchen_result()

    async def test_update_details_empty_clears_payload(self, db_session):
        item = await create_async(PendingInboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)

        updated = await repo.update_details(USER_ID, item.id, EmptyDetails())

        assert updated.details is None

    async def test_update_details_other_user_returns_none(self, db_session):
        item = await create_async(InboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)

        assert await repo.update_details(OTHER_USER_ID, item.id, EmptyDetails()) is None

    async def test_mark_as_processed(self, db_session):
        item = await create_async(PendingInboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)

        marked = await repo.mark_as_processed(
            USER_ID, item.id, created_task_id="task-1", expected_version=1
        )

        assert marked is not None
        assert marked.status == InboxItemStatus.PROCESSED
        assert marked.processed_at is not None
        assert marked.created_task_id == "task-1"
        assert marked.version == 2
        assert isinstance(decode_details(marked.details), ProcessedDetails)

    async def test_mark_as_processed_with_stale_version_returns_none(self, db_session):
        item = await create_async(PendingInboxItemFactory, db_session, user_id=USER_ID)
        repo = InboxRepository(db_session)

        first = await repo.mark_as_processed(USER_ID, item.id, expected_version=1)
        second = await repo.mark_as_processed(USER_ID, item.id, expected_version=1)

        assert first is not None
        assert second is None

    async def test_delete_and_bulk_operations(self, db_session):
        items = [
            await create_async(InboxItemFactory, db_session, user_id=USER_ID)
            for _ in range(3)
        ]
        foreign = await create_async(InboxItemFactory, db_session, user_id=OTHER_USER_ID)
        repo = InboxRepository(db_session)

        archived = await repo.bulk_update_status(
            USER_ID, [items[0].id, foreign.id], InboxItemStatus.ARCHIVED
        )
        deleted = await repo.bulk_delete(USER_ID, [items[1].id, foreign.id])

        assert [i.id for i in archived] == [items[0].id]
        assert deleted == 1
        assert await repo.delete(USER_ID, items[2].id) is True
        assert await repo.delete(USER_ID, items[2].id) is False

        counts = await repo.count_by_status(USER_ID)
        assert counts == {InboxItemStatus.ARCHIVED: 1}
