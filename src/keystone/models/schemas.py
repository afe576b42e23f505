"""Pydantic schemas for API request/response validation."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field, model_validator

from keystone.models.db import (
    ACTION_STATUSES,
    IMPACTS,
    LIKELIHOODS,
    PRIORITIES,
    PROJECT_STATUSES,
    REQUIREMENT_STATUSES,
    REQUIREMENT_TYPES,
    RESPONSE_STRATEGIES,
    RFC_STATUSES,
    RISK_CATEGORIES,
    RISK_STATUSES,
    RISK_TRENDS,
    SEVERITY_LEVELS,
    STAKEHOLDER_LEVELS,
    TASK_STATUSES,
    TASK_TYPES,
    TEST_CASE_STATUSES,
    WORKSPACE_ROLES,
)


def _one_of(values: tuple[str, ...]) -> str:
    return "^(" + "|".join(values) + ")$"


class PartialUpdate(BaseModel):
    """Partial update body.

    Fields listed in ``not_null`` may be omitted but not sent as ``null``;
    they map to NOT NULL columns.
    """

    not_null: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self):
        nulled = sorted(f for f in self.not_null if f in self.model_fields_set and getattr(self, f) is None)
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


# ── Users & workspaces ────────────────────────────────────────────────────────


class UserUpsert(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, max_length=255)
    name: str = ""
    image_url: str = ""


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None
    image_url: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""


class WorkspaceResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    owner_id: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WorkspaceMemberAdd(BaseModel):
    email: str = Field(..., min_length=3)
    role: str = Field("MEMBER", pattern=_one_of(WORKSPACE_ROLES))


class WorkspaceMemberResponse(BaseModel):
    id: uuid.UUID
    workspace_id: uuid.UUID
    user_id: str
    role: str

    model_config = {"from_attributes": True}


# ── Projects ──────────────────────────────────────────────────────────────────


class ProjectCreate(BaseModel):
    workspace_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    status: str = Field("ACTIVE", pattern=_one_of(PROJECT_STATUSES))
    priority: str = Field("MEDIUM", pattern=_one_of(PRIORITIES))
    progress: int = Field(0, ge=0, le=100)
    # User id or email; resolved against the workspace members.
    team_lead: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: float | None = None
    members: list[str] = []


class ProjectUpdate(PartialUpdate):
    not_null = frozenset({"name", "status", "priority"})

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: str | None = Field(None, pattern=_one_of(PROJECT_STATUSES))
    priority: str | None = Field(None, pattern=_one_of(PRIORITIES))
    progress: int | None = Field(None, ge=0, le=100)
    team_lead: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: float | None = None
    spent: float | None = None


class ProjectResponse(BaseModel):
    id: uuid.UUID
    workspace_id: uuid.UUID
    name: str
    description: str | None
    status: str
    priority: str
    progress: int | None
    team_lead: str | None
    start_date: datetime | None
    end_date: datetime | None
    budget: float | None
    spent: float | None
    archived: bool
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectMemberAdd(BaseModel):
    email: str = Field(..., min_length=3)


class ProjectMemberResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    user_id: str
    status: str

    model_config = {"from_attributes": True}


# ── Risks ─────────────────────────────────────────────────────────────────────


class RiskCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    category: str = Field(..., pattern=_one_of(RISK_CATEGORIES))
    likelihood: str = Field("POSSIBLE", pattern=_one_of(LIKELIHOODS))
    impact: str | None = Field(None, pattern=_one_of(IMPACTS))
    # Older clients send the impact label as "severity".
    severity: str | None = Field(None, pattern=_one_of(IMPACTS))
    risk_score: int | None = Field(None, ge=0, le=100)
    owner: str | None = None
    status: str = Field("IDENTIFIED", pattern=_one_of(RISK_STATUSES))
    trend: str | None = Field(None, pattern=_one_of(RISK_TRENDS))
    risk_statement: str | None = None
    cause: str | None = None
    effect: str | None = None
    triggers: list[str] = []
    existing_controls: str | None = None
    proposed_controls: str | None = None
    estimated_cost: float | None = None
    estimated_schedule_impact: str | None = None
    tags: list[str] = []
    related_risks: list[str] = []


class RiskUpdate(PartialUpdate):
    not_null = frozenset({"title", "category", "likelihood", "impact", "status"})

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    category: str | None = Field(None, pattern=_one_of(RISK_CATEGORIES))
    likelihood: str | None = Field(None, pattern=_one_of(LIKELIHOODS))
    impact: str | None = Field(None, pattern=_one_of(IMPACTS))
    owner: str | None = None
    status: str | None = Field(None, pattern=_one_of(RISK_STATUSES))
    trend: str | None = Field(None, pattern=_one_of(RISK_TRENDS))
    risk_statement: str | None = None
    cause: str | None = None
    effect: str | None = None
    triggers: list[str] | None = None
    existing_controls: str | None = None
    proposed_controls: str | None = None
    estimated_cost: float | None = None
    estimated_schedule_impact: str | None = None
    tags: list[str] | None = None
    related_risks: list[str] | None = None


class RiskBulkUpdate(BaseModel):
    project_id: uuid.UUID
    risk_ids: list[uuid.UUID] = Field(..., min_length=1)
    updates: RiskUpdate


class RiskStatusUpdate(BaseModel):
    status: str = Field(..., pattern=_one_of(RISK_STATUSES))
    notes: str | None = None


class RiskAssessmentCreate(BaseModel):
    """Assessment factors, each on a 1..5 scale."""

    likelihood: int = Field(..., ge=1, le=5)
    impact: int = Field(..., ge=1, le=5)
    detectability: int | None = Field(None, ge=1, le=5)
    velocity: int | None = Field(None, ge=1, le=5)
    interconnectedness: int | None = Field(None, ge=1, le=5)
    control_effectiveness: int | None = Field(None, ge=1, le=5)
    notes: str | None = None


class ResponseActionIn(BaseModel):
    description: str = Field(..., min_length=1)
    status: str = Field("PENDING", pattern=_one_of(ACTION_STATUSES))
    assigned_to: str | None = None
    due_date: datetime | None = None


class ResponseActionResponse(BaseModel):
    id: uuid.UUID
    description: str
    status: str
    assigned_to: str | None
    due_date: datetime | None

    model_config = {"from_attributes": True}


class ResponsePlanUpsert(BaseModel):
    response_strategy: str | None = Field(None, pattern=_one_of(RESPONSE_STRATEGIES))
    mitigation_strategy: str | None = None
    contingency_plan: str | None = None
    fallback_plan: str | None = None
    response_owner: str | None = None
    response_deadline: datetime | None = None
    response_cost: float | None = None
    response_effectiveness: int | None = Field(None, ge=0, le=100)
    acceptance_criteria: str | None = None
    triggers: list[str] | None = None
    actions: list[ResponseActionIn] | None = None


class ResponsePlanResponse(BaseModel):
    id: uuid.UUID
    risk_id: uuid.UUID
    response_strategy: str | None
    mitigation_strategy: str | None
    contingency_plan: str | None
    fallback_plan: str | None
    response_owner: str | None
    response_deadline: datetime | None
    response_cost: float | None
    response_effectiveness: int
    acceptance_criteria: str | None
    triggers: list[str] | None
    actions: list[ResponseActionResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class IndicatorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    threshold: float
    current_value: float | None = None
    active: bool = True


class IndicatorUpdate(PartialUpdate):
    not_null = frozenset({"name", "threshold", "active"})

    name: str | None = Field(None, min_length=1, max_length=255)
    threshold: float | None = None
    current_value: float | None = None
    active: bool | None = None


class IndicatorResponse(BaseModel):
    id: uuid.UUID
    risk_id: uuid.UUID
    name: str
    threshold: float
    current_value: float | None
    active: bool
    triggered: bool
    last_updated: datetime | None

    model_config = {"from_attributes": True}


class EscalationCreate(BaseModel):
    escalated_to: str = Field(..., min_length=1)
    notes: str | None = None
    priority: str = Field("HIGH", pattern=_one_of(SEVERITY_LEVELS))


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)


class CommentResponse(BaseModel):
    id: uuid.UUID
    user_id: str | None
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RiskHistoryResponse(BaseModel):
    id: uuid.UUID
    risk_id: uuid.UUID
    user_id: str | None
    action: str
    details: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class RiskResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    risk_code: str
    title: str
    description: str | None
    category: str
    likelihood: str
    impact: str
    risk_score: int
    risk_level: str
    owner: str | None
    status: str
    trend: str | None
    risk_statement: str | None
    cause: str | None
    effect: str | None
    triggers: list[str] | None
    existing_controls: str | None
    proposed_controls: str | None
    detectability: int | None
    velocity: int | None
    interconnectedness: int | None
    control_effectiveness: int | None
    last_assessment_date: datetime | None
    estimated_cost: float | None
    estimated_schedule_impact: str | None
    tags: list[str] | None
    related_risks: list[str] | None
    residual_risk: float | None
    response_implemented: bool
    escalated: bool
    escalated_to: str | None
    escalation_date: datetime | None
    escalation_priority: str | None
    escalation_status: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RiskDetailResponse(RiskResponse):
    comments: list[CommentResponse] = []
    history: list[RiskHistoryResponse] = []
    response_plan: ResponsePlanResponse | None = None
    indicators: list[IndicatorResponse] = []
    linked_requirement_ids: list[uuid.UUID] = []
    linked_task_ids: list[uuid.UUID] = []


class LinkRequirement(BaseModel):
    requirement_id: uuid.UUID


class LinkTask(BaseModel):
    task_id: uuid.UUID


# ── Tasks ─────────────────────────────────────────────────────────────────────


class TaskCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    type: str = Field("TASK", pattern=_one_of(TASK_TYPES))
    status: str = Field("TODO", pattern=_one_of(TASK_STATUSES))
    priority: str = Field("MEDIUM", pattern=_one_of(PRIORITIES))
    assignee_id: str | None = None
    due_date: datetime | None = None
    start_date: datetime | None = None
    sprint: str | None = None
    tags: list[str] = []
    estimated_hours: int | None = Field(None, ge=0)


class TaskUpdate(PartialUpdate):
    not_null = frozenset({"title", "type", "status", "priority"})

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    type: str | None = Field(None, pattern=_one_of(TASK_TYPES))
    status: str | None = Field(None, pattern=_one_of(TASK_STATUSES))
    priority: str | None = Field(None, pattern=_one_of(PRIORITIES))
    assignee_id: str | None = None
    due_date: datetime | None = None
    start_date: datetime | None = None
    sprint: str | None = None
    tags: list[str] | None = None
    estimated_hours: int | None = Field(None, ge=0)


class TaskStatusUpdate(BaseModel):
    status: str = Field(..., pattern=_one_of(TASK_STATUSES))
    position: int | None = Field(None, ge=0)


class TaskBulkDelete(BaseModel):
    task_ids: list[uuid.UUID] = Field(..., min_length=1)


class SubtaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)


class SubtaskUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=500)
    completed: bool | None = None
    position: int | None = Field(None, ge=0)


class SubtaskResponse(BaseModel):
    id: uuid.UUID
    task_id: uuid.UUID
    title: str
    completed: bool
    position: int

    model_config = {"from_attributes": True}


class TaskResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    description: str | None
    type: str
    status: str
    priority: str
    assignee_id: str | None
    due_date: datetime | None
    start_date: datetime | None
    sprint: str | None
    tags: list[str] | None
    estimated_hours: int | None
    position: int
    subtasks: list[SubtaskResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DependencyCreate(BaseModel):
    depends_on_task_id: uuid.UUID


class TaskDependencyResponse(BaseModel):
    id: uuid.UUID
    dependent_task_id: uuid.UUID
    depends_on_task_id: uuid.UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class DependencyLink(BaseModel):
    dependency_id: uuid.UUID
    task_id: uuid.UUID
    title: str
    status: str


class TaskDependenciesResponse(BaseModel):
    dependencies: list[DependencyLink]
    dependents: list[DependencyLink]


# ── Stakeholders ──────────────────────────────────────────────────────────────

_LEVEL = _one_of(STAKEHOLDER_LEVELS)


class StakeholderCreate(BaseModel):
    project_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=255)
    email: str | None = None
    role: str | None = None
    organization: str | None = None
    department: str | None = None
    phone: str | None = None
    notes: str | None = None
    influence: str = Field("medium", pattern=_LEVEL)
    interest: str = Field("medium", pattern=_LEVEL)
    power: str = Field("medium", pattern=_LEVEL)
    impact: str = Field("medium", pattern=_LEVEL)
    engagement_level: str = Field("medium", pattern=_LEVEL)
    category: str = "external"
    engagement_approach: str | None = None
    communication_plan: str | None = None
    communication_channel: str | None = None
    engagement_frequency: str | None = None
    engagement_notes: str | None = None
    location: str | None = None
    timezone: str | None = None
    language: str = "en"
    tags: list[str] = []


class StakeholderUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: str | None = None
    role: str | None = None
    organization: str | None = None
    department: str | None = None
    phone: str | None = None
    notes: str | None = None
    influence: str | None = Field(None, pattern=_LEVEL)
    interest: str | None = Field(None, pattern=_LEVEL)
    power: str | None = Field(None, pattern=_LEVEL)
    impact: str | None = Field(None, pattern=_LEVEL)
    engagement_level: str | None = Field(None, pattern=_LEVEL)
    category: str | None = None
    engagement_approach: str | None = None
    communication_plan: str | None = None
    communication_channel: str | None = None
    engagement_frequency: str | None = None
    engagement_notes: str | None = None
    location: str | None = None
    timezone: str | None = None
    language: str | None = None
    tags: list[str] | None = None


class StakeholderResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    email: str | None
    role: str | None
    organization: str | None
    department: str | None
    phone: str | None
    notes: str | None
    influence: str
    interest: str
    power: str
    impact: str
    engagement_level: str
    category: str
    engagement_approach: str | None
    communication_plan: str | None
    communication_channel: str | None
    engagement_frequency: str | None
    engagement_notes: str | None
    location: str | None
    timezone: str | None
    language: str | None
    tags: list[str] | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StakeholderHistoryCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    status: str = "completed"
    date: datetime | None = None
    metadata: dict[str, Any] | None = None


class StakeholderHistoryResponse(BaseModel):
    id: uuid.UUID
    stakeholder_id: uuid.UUID
    type: str
    title: str
    description: str | None
    status: str | None
    date: datetime | None
    user_id: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")

    model_config = {"from_attributes": True}


# ── Requirements ──────────────────────────────────────────────────────────────


class RequirementCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    type: str = Field("FUNCTIONAL", pattern=_one_of(REQUIREMENT_TYPES))
    priority: str = Field("MEDIUM", pattern=_one_of(SEVERITY_LEVELS))
    status: str = Field("DRAFT", pattern=_one_of(REQUIREMENT_STATUSES))
    owner_id: str | None = None
    parent_id: uuid.UUID | None = None


class RequirementUpdate(PartialUpdate):
    not_null = frozenset({"title", "type", "priority", "status"})

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    type: str | None = Field(None, pattern=_one_of(REQUIREMENT_TYPES))
    priority: str | None = Field(None, pattern=_one_of(SEVERITY_LEVELS))
    status: str | None = Field(None, pattern=_one_of(REQUIREMENT_STATUSES))
    owner_id: str | None = None
    parent_id: uuid.UUID | None = None


class RequirementTestCaseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    status: str = Field("NOT_RUN", pattern=_one_of(TEST_CASE_STATUSES))


class RequirementTestCaseUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=500)
    status: str | None = Field(None, pattern=_one_of(TEST_CASE_STATUSES))


class RequirementTestCaseResponse(BaseModel):
    id: uuid.UUID
    requirement_id: uuid.UUID
    title: str
    status: str

    model_config = {"from_attributes": True}


class RequirementResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    requirement_code: str
    title: str
    description: str | None
    type: str
    priority: str
    status: str
    owner_id: str | None
    parent_id: uuid.UUID | None
    linked_task_ids: list[uuid.UUID] = []
    stakeholder_ids: list[uuid.UUID] = []
    test_cases: list[RequirementTestCaseResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RequirementStakeholderAdd(BaseModel):
    stakeholder_id: uuid.UUID


# ── RFCs ──────────────────────────────────────────────────────────────────────


class RFCCreate(BaseModel):
    project_id: uuid.UUID
    requirement_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    reason: str = ""
    impact: str | None = None
    impact_level: str = Field("MEDIUM", pattern=_one_of(SEVERITY_LEVELS))
    risk: str | None = None
    cost_estimate: float | None = None
    schedule_impact: str | None = None
    time_estimate: str | None = None
    affected_tasks: list[str] = []
    affected_releases: list[str] = []


class RFCUpdate(PartialUpdate):
    not_null = frozenset({"title", "impact_level"})

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    reason: str | None = None
    impact: str | None = None
    impact_level: str | None = Field(None, pattern=_one_of(SEVERITY_LEVELS))
    risk: str | None = None
    cost_estimate: float | None = None
    schedule_impact: str | None = None
    time_estimate: str | None = None
    affected_tasks: list[str] | None = None
    affected_releases: list[str] | None = None


class RFCStatusUpdate(BaseModel):
    status: str = Field(..., pattern=_one_of(RFC_STATUSES))
    reviewer_id: str | None = None
    rejection_reason: str | None = None


class RFCHistoryResponse(BaseModel):
    id: uuid.UUID
    user_id: str | None
    action: str
    changes: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class RFCResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    requirement_id: uuid.UUID
    rfc_code: str
    title: str
    description: str | None
    reason: str | None
    impact: str | None
    impact_level: str
    risk: str | None
    cost_estimate: float | None
    schedule_impact: str | None
    time_estimate: str | None
    affected_tasks: list[str] | None
    affected_releases: list[str] | None
    status: str
    requester_id: str | None
    reviewer_id: str | None
    approved_by: str | None
    approved_at: datetime | None
    rejection_reason: str | None
    implemented_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RFCDetailResponse(RFCResponse):
    comments: list[CommentResponse] = []
    history: list[RFCHistoryResponse] = []


# ── Reports ───────────────────────────────────────────────────────────────────


class ReportSave(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    type: str = "custom"
    data_source: str | None = None
    config: dict[str, Any] = {}
    project_id: uuid.UUID | None = None
    shared_with: list[str] = []
    is_favorite: bool = False
    schedule: str | None = Field(None, pattern="^(daily|weekly)$")
    format: str = Field("xlsx", pattern="^(csv|xlsx|html)$")
    permissions: str = Field("edit", pattern="^(view|edit)$")


class ReportResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    type: str
    data_source: str | None
    config: dict[str, Any] | None
    project_id: uuid.UUID | None
    created_by: str
    shared_with: list[str] | None
    is_favorite: bool
    schedule: str | None
    format: str
    permissions: str
    last_modified: datetime | None
    last_run: datetime | None
    run_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ReportRunResponse(BaseModel):
    report: ReportResponse
    data: dict[str, Any]
