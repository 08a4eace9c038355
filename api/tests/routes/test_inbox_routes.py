"""Tests for inbox capture and approval routes.

Services are patched; these tests cover request validation, auth, status
codes and AppError -> JSON mapping.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from core.config import clear_settings_cache
from core.errors import ConcurrentApprovalError, missing_processing_data, not_found
from schemas import (
    ApprovalRequest,
    ApprovalResult,
    CaptureResult,
    CreatedProject,
    CreatedTask,
    InboxItemResponse,
    PendingApprovalItem,
)
from tests.factories import InboxItemFactory, PendingInboxItemFactory, kitchen_result


def _item_response(**kwargs) -> InboxItemResponse:
    return InboxItemResponse.model_validate(InboxItemFactory.build(**kwargs))


class TestCapture:
    """Tests for POST /api/inbox/capture."""

    async def test_capture_returns_201(
        self, authenticated_client: AsyncClient, test_user_id: str
    ):
        item = _item_response(user_id=test_user_id, raw_text="Buy milk")
        result = CaptureResult(inbox_item=item, queued=True, message="queued")

        with patch(
            "services.inbox_service.capture_inbox_item",
            AsyncMock(return_value=result),
        ) as mock_capture:
            response = await authenticated_client.post(
                "/api/inbox/capture", json={"raw_text": "Buy milk", "priority": "high"}
            )

        assert response.status_code == 201
        data = response.json()
        assert data["queued"] is True
        assert data["inbox_item"]["raw_text"] == "Buy milk"

        _, _, user_id, body = mock_capture.await_args.args
        assert user_id == test_user_id
        assert body.priority == "high"
        assert body.enable_intelligent_processing is True

    async def test_capture_end_to_end_with_ai_unavailable(
        self, authenticated_client: AsyncClient, app, test_user_id: str, monkeypatch
    ):
        """Capture still succeeds and queues when no AI key is configured."""
        monkeypatch.setenv("GOOGLE_API_KEY", "")
        clear_settings_cache()
        raw_text = "  Plan kitchen remodel  "

        async def _create(user_id, text):
            return InboxItemFactory.build(user_id=user_id, raw_text=text)

        with patch("services.inbox_service.InboxRepository") as repo_cls:
            repo_cls.return_value.create = AsyncMock(side_effect=_create)
            response = await authenticated_client.post(
                "/api/inbox/capture", json={"raw_text": raw_text}
            )

        assert response.status_code == 201
        data = response.json()
        assert data["inbox_item"]["raw_text"] == raw_text
        assert data["queued"] is True
        assert "when AI becomes available" in data["message"]
        assert data["queue_stats"]["total_queued"] == 1
        assert data["inbox_item"]["id"] in app.state.inbox_queue

    async def test_empty_text_is_rejected(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/inbox/capture", json={"raw_text": ""}
        )
        assert response.status_code == 422

    async def test_oversized_text_is_rejected(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/inbox/capture", json={"raw_text": "x" * 10001}
        )
        assert response.status_code == 422

    async def test_invalid_priority_is_rejected(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/inbox/capture", json={"raw_text": "Buy milk", "priority": "urgent"}
        )
        assert response.status_code == 422

    async def test_returns_401_for_unauthenticated(
        self, unauthenticated_client: AsyncClient
    ):
        response = await unauthenticated_client.post(
            "/api/inbox/capture", json={"raw_text": "Buy milk"}
        )
        assert response.status_code == 401


class TestQuickAndVoiceCapture:
    async def test_quick_capture(
        self, authenticated_client: AsyncClient, test_user_id: str
    ):
        item = _item_response(user_id=test_user_id, raw_text="Quick")
        with patch(
            "services.inbox_service.quick_capture", AsyncMock(return_value=item)
        ):
            response = await authenticated_client.post(
                "/api/inbox/quick-capture", json={"raw_text": "Quick"}
            )

        assert response.status_code == 201
        assert response.json()["raw_text"] == "Quick"

    async def test_voice_capture_validates_confidence(
        self, authenticated_client: AsyncClient
    ):
        response = await authenticated_client.post(
            "/api/inbox/voice-capture",
            json={"transcription": "water plants", "confidence": 1.5},
        )
        assert response.status_code == 422


class TestListAndStats:
    async def test_list_parses_query_filters(
        self, authenticated_client: AsyncClient, test_user_id: str
    ):
        items = [_item_response(user_id=test_user_id)]
        with patch(
            "services.inbox_service.list_inbox_items", AsyncMock(return_value=items)
        ) as mock_list:
            response = await authenticated_client.get(
                "/api/inbox",
                params={"status": "unprocessed", "search": "milk", "limit": 10},
            )

        assert response.status_code == 200
        assert len(response.json()) == 1
        filters = mock_list.await_args.args[2]
        assert [s.value for s in filters.status] == ["unprocessed"]
        assert filters.search == "milk"
        assert filters.limit == 10

    async def test_queue_stats(self, authenticated_client: AsyncClient, app):
        app.state.inbox_queue.enqueue("someone", "item-1", "text", "low")

        response = await authenticated_client.get("/api/inbox/queue/stats")

        assert response.status_code == 200
        assert response.json()["low_priority"] == 1


class TestPendingApprovals:
    """Tests for GET /api/inbox/approvals/pending."""

    async def test_returns_pending_items(
        self, authenticated_client: AsyncClient, test_user_id: str
    ):
        item = PendingInboxItemFactory.build(user_id=test_user_id)
        pending = [
            PendingApprovalItem(
                inbox_item=InboxItemResponse.model_validate(item),
                processing_result=kitchen_result(),
                processed_at=datetime(2026, 1, 1, tzinfo=UTC),
            )
        ]
        with patch(
            "services.inbox_approval_service.get_pending_approval_items",
            AsyncMock(return_value=pending),
        ):
            response = await authenticated_client.get("/api/inbox/approvals/pending")

        assert response.status_code == 200
        data = response.json()
        assert data[0]["inbox_item"]["id"] == item.id
        assert data[0]["processing_result"]["suggested_projects"][0]["id"] == "p1"

    async def test_missing_processing_data_maps_to_422(
        self, authenticated_client: AsyncClient
    ):
        with patch(
            "services.inbox_approval_service.get_pending_approval_items",
            AsyncMock(side_effect=missing_processing_data("item-1 has no result")),
        ):
            response = await authenticated_client.get("/api/inbox/approvals/pending")

        assert response.status_code == 422
        assert response.json()["code"] == "MISSING_PROCESSING_DATA"

    async def test_returns_401_for_unauthenticated(
        self, unauthenticated_client: AsyncClient
    ):
        response = await unauthenticated_client.get("/api/inbox/approvals/pending")
        assert response.status_code == 401


class TestApprove:
    """Tests for POST /api/inbox/approvals."""

    async def test_commit_returns_result(
        self, authenticated_client: AsyncClient, test_user_id: str
    ):
        result = ApprovalResult(
            created_tasks=[CreatedTask(id="task-1", name="Measure", project_id="pr-1")],
            created_projects=[CreatedProject(id="pr-1", name="Kitchen remodel")],
            skipped_tasks=["t9"],
            processing_summary=(
                "Created 1 tasks and 1 projects. Skipped 1 tasks and 0 projects."
            ),
        )
        payload = {
            "inbox_item_id": "item-1",
            "approved_projects": [{"project_id": "p1", "approved": True}],
            "approved_tasks": [
                {"task_id": "t1", "approved": True},
                {"task_id": "t9", "approved": True},
            ],
        }

        with patch(
            "services.inbox_approval_service.process_approved_items",
            AsyncMock(return_value=result),
        ) as mock_commit:
            response = await authenticated_client.post(
                "/api/inbox/approvals", json=payload
            )

        assert response.status_code == 200
        assert response.json()["processing_summary"].startswith("Created 1 tasks")
        _, user_id, request = mock_commit.await_args.args
        assert user_id == test_user_id
        assert isinstance(request, ApprovalRequest)
        assert [t.task_id for t in request.approved_tasks] == ["t1", "t9"]

    async def test_explicit_null_project_is_preserved(
        self, authenticated_client: AsyncClient
    ):
        payload = {
            "inbox_item_id": "item-1",
            "approved_tasks": [
                {
                    "task_id": "t1",
                    "approved": True,
                    "modifications": {"project_id": None},
                }
            ],
        }
        with patch(
            "services.inbox_approval_service.process_approved_items",
            AsyncMock(return_value=ApprovalResult(processing_summary="ok")),
        ) as mock_commit:
            await authenticated_client.post("/api/inbox/approvals", json=payload)

        mods = mock_commit.await_args.args[2].approved_tasks[0].modifications
        assert "project_id" in mods.model_fields_set
        assert mods.project_id is None

    async def test_not_found_maps_to_404(self, authenticated_client: AsyncClient):
        with patch(
            "services.inbox_approval_service.process_approved_items",
            AsyncMock(side_effect=not_found("Inbox item or processing result not found")),
        ):
            response = await authenticated_client.post(
                "/api/inbox/approvals", json={"inbox_item_id": "missing"}
            )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_concurrent_commit_maps_to_409(
        self, authenticated_client: AsyncClient
    ):
        with patch(
            "services.inbox_approval_service.process_approved_items",
            AsyncMock(side_effect=ConcurrentApprovalError("item-1")),
        ):
            response = await authenticated_client.post(
                "/api/inbox/approvals", json={"inbox_item_id": "item-1"}
            )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "CONCURRENT_APPROVAL"
        assert body["category"] == "conflict"

    async def test_missing_item_id_is_rejected(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post("/api/inbox/approvals", json={})
        assert response.status_code == 422

    async def test_hierarchy_relationship_type_is_kept(
        self, authenticated_client: AsyncClient
    ):
        payload = {
            "inbox_item_id": "item-1",
            "approved_hierarchies": [
                {
                    "parent_task_id": "p1",
                    "subtask_ids": ["t1"],
                    "relationship_type": "project_task",
                    "approved": True,
                }
            ],
        }
        with patch(
            "services.inbox_approval_service.process_approved_items",
            AsyncMock(return_value=ApprovalResult(processing_summary="ok")),
        ) as mock_commit:
            response = await authenticated_client.post(
                "/api/inbox/approvals", json=payload
            )

        assert response.status_code == 200
        hierarchy = mock_commit.await_args.args[2].approved_hierarchies[0]
        assert hierarchy.relationship_type == "project_task"

    @pytest.mark.parametrize("relationship_type", [None, "sibling"])
    async def test_hierarchy_without_valid_relationship_type_is_rejected(
        self, authenticated_client: AsyncClient, relationship_type
    ):
        hierarchy = {"parent_task_id": "t1", "subtask_ids": ["t2"], "approved": True}
        if relationship_type is not None:
            hierarchy["relationship_type"] = relationship_type

        response = await authenticated_client.post(
            "/api/inbox/approvals",
            json={"inbox_item_id": "item-1", "approved_hierarchies": [hierarchy]},
        )

        assert response.status_code == 422


class TestReject:
    """Tests for POST /api/inbox/{item_id}/reject."""

    async def test_reject_returns_204(
        self, authenticated_client: AsyncClient, test_user_id: str
    ):
        with patch(
            "services.inbox_approval_service.reject_intelligent_processing",
            AsyncMock(return_value=None),
        ) as mock_reject:
            response = await authenticated_client.post("/api/inbox/item-1/reject")

        assert response.status_code == 204
        _, user_id, item_id = mock_reject.await_args.args
        assert (user_id, item_id) == (test_user_id, "item-1")

    async def test_reject_missing_item_returns_404(
        self, authenticated_client: AsyncClient
    ):
        with patch(
            "services.inbox_approval_service.reject_intelligent_processing",
            AsyncMock(side_effect=not_found("Inbox item missing not found")),
        ):
            response = await authenticated_client.post("/api/inbox/missing/reject")

        assert response.status_code == 404


class TestItemEndpoints:
    async def test_get_item(self, authenticated_client: AsyncClient, test_user_id: str):
        item = _item_response(user_id=test_user_id)
        with patch(
            "services.inbox_service.get_inbox_item", AsyncMock(return_value=item)
        ):
            response = await authenticated_client.get(f"/api/inbox/{item.id}")

        assert response.status_code == 200
        assert response.json()["id"] == item.id

    async def test_patch_rejects_unknown_status(
        self, authenticated_client: AsyncClient
    ):
        response = await authenticated_client.patch(
            "/api/inbox/item-1", json={"status": "done"}
        )
        assert response.status_code == 422

    async def test_delete_returns_204(self, authenticated_client: AsyncClient):
        with patch(
            "services.inbox_service.delete_inbox_item", AsyncMock(return_value=None)
        ):
            response = await authenticated_client.delete("/api/inbox/item-1")

        assert response.status_code == 204

    async def test_bulk_rejects_empty_ids(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/inbox/bulk", json={"action": "archive", "item_ids": []}
        )
        assert response.status_code == 422

    async def test_responses_carry_request_id(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get(
            "/api/inbox/queue/stats", headers={"X-Request-Id": "req-abc"}
        )
        assert response.headers["x-request-id"] == "req-abc"
