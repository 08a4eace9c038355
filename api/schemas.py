"""Pydantic schemas for API request/response validation."""

from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from models import InboxItemStatus, ProjectStatus

# "urgent" is accepted from the AI and from reviewers but never persisted.
CandidatePriority = Literal["low", "medium", "high", "urgent"]
CapturePriority = Literal["low", "medium", "high"]
HierarchyRelationship = Literal["task_subtask", "project_task"]

MAX_RAW_TEXT_LENGTH = 10000


# =============================================================================
# Intelligent processing result (written by the AI worker)
# =============================================================================


class IntelligentTask(BaseModel):
    """A candidate task suggested by AI processing.

    ``id``, ``project_id`` and ``parent_task_id`` are temporary ids, valid only
    inside the result that contains them. ``project_id`` may also be the real
    id of a project the user already owns.
    """

    id: str
    name: str
    description: str | None = None
    priority: CandidatePriority = "medium"
    estimated_minutes: int | None = None
    due_date: date | None = None
    zone_id: int | None = None
    project_id: str | None = None
    parent_task_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""


class IntelligentProject(BaseModel):
    """A candidate project suggested by AI processing."""

    id: str
    name: str
    description: str | None = None
    zone_id: int | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    due_date: date | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""


class TaskHierarchy(BaseModel):
    parent_task_id: str
    subtask_ids: list[str] = Field(default_factory=list)
    relationship_type: HierarchyRelationship = "task_subtask"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class IntelligentProcessingResult(BaseModel):
    """Full AI decomposition of one inbox capture."""

    extracted_tasks: list[IntelligentTask] = Field(default_factory=list)
    suggested_projects: list[IntelligentProject] = Field(default_factory=list)
    task_hierarchies: list[TaskHierarchy] = Field(default_factory=list)
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_notes: str = ""
    requires_approval: bool = True


# =============================================================================
# Inbox item details (tagged variant stored in inbox_items.details)
# =============================================================================


class EmptyDetails(BaseModel):
    """No processing result: unprocessed or handled manually."""

    status: Literal["empty"] = "empty"


class PendingApprovalDetails(BaseModel):
    """AI result waiting for a human decision."""

    status: Literal["pending_approval"] = "pending_approval"
    intelligent_processing: IntelligentProcessingResult
    processed_at: datetime


class ProcessedDetails(BaseModel):
    """Approval committed; the stored result is no longer actionable."""

    status: Literal["processed"] = "processed"
    processed_at: datetime | None = None


InboxItemDetails = Annotated[
    EmptyDetails | PendingApprovalDetails | ProcessedDetails,
    Field(discriminator="status"),
]


# =============================================================================
# Inbox items
# =============================================================================


class InboxItemResponse(BaseModel):
    """Inbox item as returned to API clients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    raw_text: str
    status: InboxItemStatus
    details: dict[str, Any] | None = None
    created_task_id: str | None = None
    processed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class QueueStats(BaseModel):
    """Snapshot of the background processing queue."""

    total_queued: int
    high_priority: int
    medium_priority: int
    low_priority: int
    oldest_queued: datetime | None = None


class CaptureRequest(BaseModel):
    """Request to capture raw text into the inbox.

    ``raw_text`` is stored exactly as given (no stripping).
    """

    raw_text: str = Field(min_length=1, max_length=MAX_RAW_TEXT_LENGTH)
    enable_intelligent_processing: bool = True
    priority: CapturePriority = "medium"


class CaptureResult(BaseModel):
    inbox_item: InboxItemResponse
    queued: bool
    message: str
    queue_stats: QueueStats | None = None


class QuickCaptureRequest(BaseModel):
    raw_text: str = Field(min_length=1, max_length=MAX_RAW_TEXT_LENGTH)


class AudioMetadata(BaseModel):
    duration: float | None = Field(default=None, ge=0)
    quality: Literal["low", "medium", "high"] | None = None
    format: str | None = Field(default=None, max_length=50)


class VoiceCaptureRequest(BaseModel):
    """Transcribed voice note; the transcription becomes the raw text."""

    transcription: str = Field(min_length=1, max_length=MAX_RAW_TEXT_LENGTH)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    audio_metadata: AudioMetadata | None = None


class InboxFilters(BaseModel):
    """Filters for listing inbox items."""

    status: list[InboxItemStatus] | None = None
    has_ai_suggestions: bool | None = None
    search: str | None = Field(default=None, max_length=200)
    created_after: datetime | None = None
    created_before: datetime | None = None
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class UpdateInboxItemRequest(BaseModel):
    """Only the status is mutable; raw text never changes after capture."""

    status: InboxItemStatus


class MarkProcessedRequest(BaseModel):
    created_task_id: str | None = Field(default=None, max_length=36)


class InboxStats(BaseModel):
    unprocessed: int = 0
    processed: int = 0
    archived: int = 0
    total: int = 0


class BulkProcessRequest(BaseModel):
    action: Literal["archive", "delete", "process"]
    item_ids: list[str] = Field(min_length=1, max_length=100)
    priority: CapturePriority = "medium"


class BulkProcessResult(BaseModel):
    action: str
    processed: list[InboxItemResponse] = Field(default_factory=list)
    affected_count: int = 0
    queued_ids: list[str] = Field(default_factory=list)


# =============================================================================
# HITL approval
# =============================================================================


class PendingApprovalItem(BaseModel):
    """An inbox item together with the AI result awaiting review."""

    inbox_item: InboxItemResponse
    processing_result: IntelligentProcessingResult
    processed_at: datetime


class TaskModifications(BaseModel):
    """Reviewer overrides for a candidate task.

    Only fields present in the request count as set. ``project_id`` and
    ``parent_task_id`` win outright when present, even when null.
    """

    name: str | None = Field(default=None, max_length=500)
    description: str | None = None
    priority: CandidatePriority | None = None
    estimated_minutes: int | None = Field(default=None, ge=0)
    due_date: date | None = None
    zone_id: int | None = None
    project_id: str | None = None
    parent_task_id: str | None = None


class ProjectModifications(BaseModel):
    name: str | None = Field(default=None, max_length=500)
    description: str | None = None
    zone_id: int | None = None
    status: ProjectStatus | None = None
    due_date: date | None = None


class TaskApproval(BaseModel):
    task_id: str
    approved: bool
    modifications: TaskModifications | None = None


class ProjectApproval(BaseModel):
    project_id: str
    approved: bool
    modifications: ProjectModifications | None = None


class HierarchyApproval(BaseModel):
    parent_task_id: str
    subtask_ids: list[str] = Field(default_factory=list)
    relationship_type: HierarchyRelationship
    approved: bool


class ApprovalRequest(BaseModel):
    """Human decision over one inbox item's candidates."""

    inbox_item_id: str
    approved_tasks: list[TaskApproval] = Field(default_factory=list)
    approved_projects: list[ProjectApproval] = Field(default_factory=list)
    approved_hierarchies: list[HierarchyApproval] = Field(default_factory=list)
    processing_notes: str | None = None


class CreatedTask(BaseModel):
    id: str
    name: str
    project_id: str | None = None
    parent_task_id: str | None = None


class CreatedProject(BaseModel):
    id: str
    name: str
    zone_id: int | None = None


class ApprovalResult(BaseModel):
    created_tasks: list[CreatedTask] = Field(default_factory=list)
    created_projects: list[CreatedProject] = Field(default_factory=list)
    skipped_tasks: list[str] = Field(default_factory=list)
    skipped_projects: list[str] = Field(default_factory=list)
    processing_summary: str


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class ReadinessResponse(BaseModel):
    status: str
    database: str
    ai_configured: bool
    queue: QueueStats | None = None
    pool: PoolStatusResponse | None = None
