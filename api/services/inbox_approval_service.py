"""Human-in-the-loop approval of intelligently processed inbox items.

Flow:
    AI worker -> store_processing_result()      (item becomes pending_approval)
    reviewer  -> get_pending_approval_items()
    reviewer  -> process_approved_items()       (projects, then tasks, then mark processed)
              or reject_intelligent_processing() (result discarded, back to manual)

Approval commit is not atomic by itself: projects and tasks are created one by
one and nothing here rolls them back if a later step fails. Callers that need
all-or-nothing must run it inside one transaction (the HTTP session
dependency does).
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger, mask_user_id
from core.errors import (
    AppError,
    ConcurrentApprovalError,
    database_error,
    not_found,
    processing_result_exists,
)
from core.metrics import APPROVAL_ENTITIES_COUNTER
from core.telemetry import add_custom_attribute, track_operation
from models import InboxItemStatus, ProjectStatus, TaskPriority, TaskStatus
from repositories.inbox_repository import InboxRepository, decode_details
from repositories.productivity_repository import ProductivityRepository
from schemas import (
    ApprovalRequest,
    ApprovalResult,
    CandidatePriority,
    CreatedProject,
    CreatedTask,
    EmptyDetails,
    HierarchyRelationship,
    InboxItemResponse,
    IntelligentProcessingResult,
    IntelligentProject,
    IntelligentTask,
    PendingApprovalDetails,
    PendingApprovalItem,
    ProjectApproval,
    TaskApproval,
)

logger = get_logger(__name__)


def normalize_priority(priority: CandidatePriority) -> TaskPriority:
    """Map a candidate priority onto a persisted one ("urgent" becomes HIGH)."""
    if priority == "urgent":
        return TaskPriority.HIGH
    return TaskPriority(priority)


@dataclass
class _IdMap:
    """Temporary candidate id -> real persisted id, scoped to one commit."""

    projects: dict[str, str] = field(default_factory=dict)
    tasks: dict[str, str] = field(default_factory=dict)


def _build_project_fields(
    approval: ProjectApproval,
    candidate: IntelligentProject,
    inbox_item_id: str,
) -> dict[str, Any]:
    mods = approval.modifications
    name = (mods and mods.name) or candidate.name
    status = (mods and mods.status) or candidate.status
    zone_id = (mods and mods.zone_id) or candidate.zone_id
    due_date = (mods and mods.due_date) or candidate.due_date
    description = (mods and mods.description) or candidate.description

    return {
        "name": name,
        "status": ProjectStatus(status),
        "zone_id": zone_id,
        "due_date": due_date,
        "details": {
            "created_from_inbox": True,
            "source_inbox_item_id": inbox_item_id,
            "original_project_id": candidate.id,
            "confidence": candidate.confidence,
            "reasoning": candidate.reasoning,
            "description": description,
        },
    }


def _resolve_reference(
    reference: str | None, id_map: dict[str, str]
) -> str | None:
    """Swap a temporary id for its real id; keep anything else unchanged."""
    if reference and reference in id_map:
        return id_map[reference]
    return reference


def _build_task_fields(
    approval: TaskApproval,
    candidate: IntelligentTask,
    id_map: _IdMap,
    inbox_item_id: str,
) -> dict[str, Any]:
    mods = approval.modifications
    explicit = mods.model_fields_set if mods else set()

    project_id = _resolve_reference(candidate.project_id, id_map.projects)
    if "project_id" in explicit:
        project_id = mods.project_id

    parent_task_id = _resolve_reference(candidate.parent_task_id, id_map.tasks)
    if "parent_task_id" in explicit:
        parent_task_id = mods.parent_task_id

    priority = normalize_priority((mods and mods.priority) or candidate.priority)

    return {
        "name": (mods and mods.name) or candidate.name,
        "priority": priority,
        "status": TaskStatus.TODO,
        "due_date": (mods and mods.due_date) or candidate.due_date,
        "zone_id": (mods and mods.zone_id) or candidate.zone_id,
        "project_id": project_id,
        "parent_task_id": parent_task_id,
        "details": {
            "created_from_inbox": True,
            "source_inbox_item_id": inbox_item_id,
            "original_task_id": candidate.id,
            "confidence": candidate.confidence,
            "reasoning": candidate.reasoning,
            "description": (mods and mods.description) or candidate.description,
            "estimated_minutes": (mods and mods.estimated_minutes)
            or candidate.estimated_minutes,
            "tags": candidate.tags,
        },
    }


def _count_approved_hierarchies(
    request: ApprovalRequest, relationship_type: HierarchyRelationship
) -> int:
    return sum(
        1
        for h in request.approved_hierarchies
        if h.approved and h.relationship_type == relationship_type
    )


def build_processing_summary(
    created_tasks: int, created_projects: int, skipped_tasks: int, skipped_projects: int
) -> str:
    return (
        f"Created {created_tasks} tasks and {created_projects} projects. "
        f"Skipped {skipped_tasks} tasks and {skipped_projects} projects."
    )


@track_operation("inbox_store_processing_result")
async def store_processing_result(
    db: AsyncSession,
    user_id: str,
    inbox_item_id: str,
    result: IntelligentProcessingResult,
) -> None:
    """Attach an AI result to an inbox item and flag it pending approval.

    Only an unprocessed item with no stored result accepts one; a result
    already under review is never replaced.

    Raises:
        AppError: NOT_FOUND if the item is missing, PROCESSING_RESULT_EXISTS
            if it is already pending approval or processed, DB_ERROR for
            anything else.
    """
    repo = InboxRepository(db)
    details = PendingApprovalDetails(
        intelligent_processing=result,
        processed_at=datetime.now(UTC),
    )

    try:
        item = await repo.get_by_id(user_id, inbox_item_id)
        if item is None:
            raise not_found(f"Inbox item {inbox_item_id} not found")
        current = decode_details(item.details, item_id=item.id)
        if item.status != InboxItemStatus.UNPROCESSED or not isinstance(
            current, EmptyDetails
        ):
            raise processing_result_exists(
                f"Inbox item {inbox_item_id} already has a processing result"
            )
        item = await repo.update_details(user_id, inbox_item_id, details)
    except AppError as e:
        logger.warning(
            "inbox.processing_result.not_stored",
            user_id=mask_user_id(user_id),
            inbox_item_id=inbox_item_id,
            code=e.code.value,
        )
        raise
    except Exception as e:
        logger.error(
            "inbox.processing_result.store_failed",
            user_id=mask_user_id(user_id),
            inbox_item_id=inbox_item_id,
            error=str(e),
        )
        raise database_error("Failed to store processing result for approval") from e

    if item is None:
        raise not_found(f"Inbox item {inbox_item_id} not found")

    logger.info(
        "inbox.processing_result.stored",
        user_id=mask_user_id(user_id),
        inbox_item_id=inbox_item_id,
        task_count=len(result.extracted_tasks),
        project_count=len(result.suggested_projects),
        requires_approval=result.requires_approval,
    )


@track_operation("inbox_pending_approvals")
async def get_pending_approval_items(
    db: AsyncSession, user_id: str
) -> list[PendingApprovalItem]:
    """List the user's unprocessed items that carry an AI result for review.

    Raises:
        AppError: MISSING_PROCESSING_DATA if an item is flagged pending
            without a payload; DB_ERROR for anything else.
    """
    repo = InboxRepository(db)

    try:
        items = await repo.list_by_status(user_id, [InboxItemStatus.UNPROCESSED])
        pending: list[PendingApprovalItem] = []
        for item in items:
            details = decode_details(item.details, item_id=item.id)
            if not isinstance(details, PendingApprovalDetails):
                continue
            pending.append(
                PendingApprovalItem(
                    inbox_item=InboxItemResponse.model_validate(item),
                    processing_result=details.intelligent_processing,
                    processed_at=details.processed_at,
                )
            )
    except AppError as e:
        logger.error(
            "inbox.approval.list_failed",
            user_id=mask_user_id(user_id),
            code=e.code.value,
            error=e.message,
        )
        raise
    except Exception as e:
        logger.error(
            "inbox.approval.list_failed",
            user_id=mask_user_id(user_id),
            error=str(e),
        )
        raise database_error("Failed to retrieve pending approval items") from e

    return pending


@track_operation("inbox_approval_commit")
async def process_approved_items(
    db: AsyncSession,
    user_id: str,
    request: ApprovalRequest,
) -> ApprovalResult:
    """Create the approved projects and tasks, then mark the item processed.

    Projects are created before tasks so task references to temporary project
    ids can be remapped to real ids. Unapproved or unknown candidate ids are
    reported as skipped, never as errors.

    Raises:
        AppError: NOT_FOUND if the item is missing or has no pending result,
            CONCURRENT_APPROVAL if another commit consumed it first,
            DB_ERROR for any other failure.
    """
    inbox_repo = InboxRepository(db)
    productivity_repo = ProductivityRepository(db)
    inbox_item_id = request.inbox_item_id
    add_custom_attribute("inbox.item_id", inbox_item_id)

    try:
        item = await inbox_repo.get_by_id(user_id, inbox_item_id)
        if item is None:
            raise not_found("Inbox item or processing result not found")
        details = decode_details(item.details, item_id=item.id)
        if not isinstance(details, PendingApprovalDetails):
            raise not_found("Inbox item or processing result not found")

        expected_version = item.version
        processing = details.intelligent_processing
        candidate_projects = {p.id: p for p in processing.suggested_projects}
        candidate_tasks = {t.id: t for t in processing.extracted_tasks}
        id_map = _IdMap()

        created_projects: list[CreatedProject] = []
        skipped_projects: list[str] = []
        for approval in request.approved_projects:
            candidate = candidate_projects.get(approval.project_id)
            if not approval.approved or candidate is None:
                skipped_projects.append(approval.project_id)
                continue

            project = await productivity_repo.create_project(
                user_id, **_build_project_fields(approval, candidate, inbox_item_id)
            )
            id_map.projects[candidate.id] = project.id
            created_projects.append(
                CreatedProject(id=project.id, name=project.name, zone_id=project.zone_id)
            )

        created_tasks: list[CreatedTask] = []
        skipped_tasks: list[str] = []
        for approval in request.approved_tasks:
            candidate = candidate_tasks.get(approval.task_id)
            if not approval.approved or candidate is None:
                skipped_tasks.append(approval.task_id)
                continue

            task = await productivity_repo.create_task(
                user_id,
                **_build_task_fields(approval, candidate, id_map, inbox_item_id),
            )
            id_map.tasks[candidate.id] = task.id
            created_tasks.append(
                CreatedTask(
                    id=task.id,
                    name=task.name,
                    project_id=task.project_id,
                    parent_task_id=task.parent_task_id,
                )
            )

        marked = await inbox_repo.mark_as_processed(
            user_id, inbox_item_id, expected_version=expected_version
        )
        if marked is None:
            raise ConcurrentApprovalError(inbox_item_id)
    except AppError as e:
        logger.error(
            "inbox.approval.failed",
            user_id=mask_user_id(user_id),
            inbox_item_id=inbox_item_id,
            code=e.code.value,
            error=e.message,
        )
        raise
    except Exception as e:
        logger.error(
            "inbox.approval.failed",
            user_id=mask_user_id(user_id),
            inbox_item_id=inbox_item_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise database_error("Failed to process approved items") from e

    result = ApprovalResult(
        created_tasks=created_tasks,
        created_projects=created_projects,
        skipped_tasks=skipped_tasks,
        skipped_projects=skipped_projects,
        processing_summary=build_processing_summary(
            len(created_tasks),
            len(created_projects),
            len(skipped_tasks),
            len(skipped_projects),
        ),
    )

    APPROVAL_ENTITIES_COUNTER.add(
        len(created_projects), {"entity": "project", "outcome": "created"}
    )
    APPROVAL_ENTITIES_COUNTER.add(
        len(skipped_projects), {"entity": "project", "outcome": "skipped"}
    )
    APPROVAL_ENTITIES_COUNTER.add(
        len(created_tasks), {"entity": "task", "outcome": "created"}
    )
    APPROVAL_ENTITIES_COUNTER.add(
        len(skipped_tasks), {"entity": "task", "outcome": "skipped"}
    )
    logger.info(
        "inbox.approval.completed",
        user_id=mask_user_id(user_id),
        inbox_item_id=inbox_item_id,
        created_tasks=len(created_tasks),
        created_projects=len(created_projects),
        skipped_tasks=len(skipped_tasks),
        skipped_projects=len(skipped_projects),
        approved_task_hierarchies=_count_approved_hierarchies(request, "task_subtask"),
        approved_project_hierarchies=_count_approved_hierarchies(
            request, "project_task"
        ),
        has_notes=bool(request.processing_notes),
    )
    return result


@track_operation("inbox_approval_reject")
async def reject_intelligent_processing(
    db: AsyncSession, user_id: str, inbox_item_id: str
) -> None:
    """Discard an item's AI result and return it to manual handling.

    Irreversible: the result is not kept anywhere.
    """
    repo = InboxRepository(db)

    try:
        item = await repo.update_details(user_id, inbox_item_id, EmptyDetails())
    except Exception as e:
        logger.error(
            "inbox.approval.reject_failed",
            user_id=mask_user_id(user_id),
            inbox_item_id=inbox_item_id,
            error=str(e),
        )
        raise database_error("Failed to reject intelligent processing") from e

    if item is None:
        raise not_found(f"Inbox item {inbox_item_id} not found")

    logger.info(
        "inbox.approval.rejected",
        user_id=mask_user_id(user_id),
        inbox_item_id=inbox_item_id,
    )
