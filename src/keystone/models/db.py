"""SQLAlchemy ORM models for the Keystone platform."""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")

# ── Enumerated values ─────────────────────────────────────────────────────────

WORKSPACE_ROLES = ("ADMIN", "MEMBER")
PROJECT_STATUSES = ("PLANNING", "ACTIVE", "ON_HOLD", "COMPLETED", "CANCELLED")
PRIORITIES = ("LOW", "MEDIUM", "HIGH")
SEVERITY_LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

RISK_CATEGORIES = (
    "TECHNICAL",
    "SCHEDULE",
    "BUDGET",
    "RESOURCE",
    "QUALITY",
    "EXTERNAL",
    "COMPLIANCE",
    "OPERATIONAL",
)
LIKELIHOODS = ("RARE", "UNLIKELY", "POSSIBLE", "LIKELY", "ALMOST_CERTAIN")
IMPACTS = ("INSIGNIFICANT", "MINOR", "MODERATE", "MAJOR", "CATASTROPHIC")
RISK_STATUSES = ("IDENTIFIED", "ANALYZING", "ACTIVE", "MONITORING", "MITIGATED", "CLOSED")
RISK_TRENDS = ("INCREASING", "DECREASING", "STABLE")
RISK_HISTORY_ACTIONS = (
    "CREATED",
    "UPDATE",
    "STATUS_CHANGE",
    "ASSESSMENT",
    "RESPONSE_PLAN",
    "ESCALATION",
)
RESPONSE_STRATEGIES = ("AVOID", "MITIGATE", "TRANSFER", "ACCEPT", "ESCALATE")
ACTION_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED")

TASK_TYPES = ("TASK", "BUG", "FEATURE", "IMPROVEMENT", "OTHER")
TASK_STATUSES = ("TODO", "IN_PROGRESS", "IN_REVIEW", "DONE")

STAKEHOLDER_LEVELS = ("low", "medium", "high")

REQUIREMENT_TYPES = ("FUNCTIONAL", "NON_FUNCTIONAL", "BUSINESS", "TECHNICAL")
REQUIREMENT_STATUSES = ("DRAFT", "APPROVED", "IN_PROGRESS", "COMPLETED", "REJECTED")
TEST_CASE_STATUSES = ("NOT_RUN", "PASSED", "FAILED")

RFC_STATUSES = (
    "PROPOSED",
    "UNDER_REVIEW",
    "APPROVED",
    "REJECTED",
    "IMPLEMENTED",
    "CANCELLED",
)
RFC_HISTORY_ACTIONS = ("CREATED", "UPDATED", "STATUS_CHANGED")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _fk(target: str, nullable: bool = False, ondelete: str = "CASCADE") -> Column:
    return Column(Uuid, ForeignKey(target, ondelete=ondelete), nullable=nullable, index=True)


def _user_fk(nullable: bool = True) -> Column:
    return Column(String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=nullable)


# ── Identity & organisation ───────────────────────────────────────────────────


class User(Base):
    """A user mirrored from the identity provider."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), default="")
    image_url = Column(String(500), default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Workspace(Base):
    """A workspace groups projects and the people allowed to see them."""

    __tablename__ = "workspaces"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    owner_id = _user_fk()
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members = relationship(
        "WorkspaceMember", back_populates="workspace", cascade="all, delete-orphan", passive_deletes=True
    )
    projects = relationship(
        "Project", back_populates="workspace", cascade="all, delete-orphan", passive_deletes=True
    )


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"
    __table_args__ = (UniqueConstraint("workspace_id", "user_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id = _fk("workspaces.id")
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(*WORKSPACE_ROLES, name="workspace_role"), default="MEMBER", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    workspace = relationship("Workspace", back_populates="members")


class Project(Base):
    """A managed project inside a workspace."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id = _fk("workspaces.id")
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, default="")
    status = Column(Enum(*PROJECT_STATUSES, name="project_status"), default="ACTIVE", nullable=False)
    priority = Column(Enum(*PRIORITIES, name="project_priority"), default="MEDIUM", nullable=False)
    progress = Column(Integer, default=0)
    team_lead = _user_fk()
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    budget = Column(Float, nullable=True)
    spent = Column(Float, default=0.0)
    archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    workspace = relationship("Workspace", back_populates="projects")
    members = relationship(
        "ProjectMember", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    risks = relationship("Risk", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    stakeholders = relationship(
        "Stakeholder", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    requirements = relationship(
        "Requirement", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    rfcs = relationship("RFC", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = _fk("projects.id")
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum("ACTIVE", "INACTIVE", name="member_status"), default="ACTIVE", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="members")


# ── Risk register ─────────────────────────────────────────────────────────────


class Risk(Base):
    """An identified project risk with its scoring and escalation state."""

    __tablename__ = "risks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = _fk("projects.id")
    risk_code = Column(String(32), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    category = Column(Enum(*RISK_CATEGORIES, name="risk_category"), nullable=False)
    likelihood = Column(Enum(*LIKELIHOODS, name="risk_likelihood"), default="POSSIBLE", nullable=False)
    impact = Column(Enum(*IMPACTS, name="risk_impact"), default="MODERATE", nullable=False)
    risk_score = Column(Integer, default=0, nullable=False)
    risk_level = Column(Enum(*SEVERITY_LEVELS, name="risk_level"), default="MEDIUM", nullable=False)
    owner = Column(String(255), nullable=True)
    status = Column(Enum(*RISK_STATUSES, name="risk_status"), default="IDENTIFIED", nullable=False)
    trend = Column(Enum(*RISK_TRENDS, name="risk_trend"), nullable=True)

    risk_statement = Column(Text, nullable=True)
    cause = Column(Text, nullable=True)
    effect = Column(Text, nullable=True)
    triggers = Column(JSONType, default=list)
    existing_controls = Column(Text, nullable=True)
    proposed_controls = Column(Text, nullable=True)

    # Assessment factors on a 1..5 scale
    detectability = Column(Integer, nullable=True)
    velocity = Column(Integer, nullable=True)
    interconnectedness = Column(Integer, nullable=True)
    control_effectiveness = Column(Integer, nullable=True)
    last_assessment_date = Column(DateTime(timezone=True), nullable=True)
    assessed_by = _user_fk()

    estimated_cost = Column(Float, nullable=True)
    estimated_schedule_impact = Column(String(255), nullable=True)
    tags = Column(JSONType, default=list)
    related_risks = Column(JSONType, default=list)

    residual_risk = Column(Float, nullable=True)
    response_implemented = Column(Boolean, default=False, nullable=False)

    escalated = Column(Boolean, default=False, nullable=False)
    escalated_to = Column(String(255), nullable=True)
    escalation_date = Column(DateTime(timezone=True), nullable=True)
    escalation_notes = Column(Text, nullable=True)
    escalation_priority = Column(Enum(*SEVERITY_LEVELS, name="escalation_priority"), nullable=True)
    escalation_status = Column(String(50), nullable=True)

    created_by = _user_fk()
    updated_by = _user_fk()
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    project = relationship("Project", back_populates="risks")
    comments = relationship(
        "RiskComment",
        back_populates="risk",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RiskComment.created_at.desc()",
    )
    history = relationship(
        "RiskHistory",
        back_populates="risk",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RiskHistory.created_at.desc()",
    )
    response_plan = relationship(
        "RiskResponsePlan",
        back_populates="risk",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    indicators = relationship(
        "RiskIndicator", back_populates="risk", cascade="all, delete-orphan", passive_deletes=True
    )
    requirement_links = relationship(
        "RiskRequirementLink", back_populates="risk", cascade="all, delete-orphan", passive_deletes=True
    )
    task_links = relationship(
        "RiskTaskLink", back_populates="risk", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def linked_requirement_ids(self) -> list[uuid.UUID]:
        return [link.requirement_id for link in self.requirement_links]

    @property
    def linked_task_ids(self) -> list[uuid.UUID]:
        return [link.task_id for link in self.task_links]


class RiskComment(Base):
    __tablename__ = "risk_comments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    risk_id = _fk("risks.id")
    user_id = _user_fk()
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    risk = relationship("Risk", back_populates="comments")


class RiskHistory(Base):
    """Audit trail entry for a risk."""

    __tablename__ = "risk_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    risk_id = _fk("risks.id")
    user_id = _user_fk()
    action = Column(Enum(*RISK_HISTORY_ACTIONS, name="risk_history_action"), nullable=False)
    details = Column(JSONType, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    risk = relationship("Risk", back_populates="history")


class RiskResponsePlan(Base):
    """How the team intends to respond to a risk (one plan per risk)."""

    __tablename__ = "risk_response_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    risk_id = Column(Uuid, ForeignKey("risks.id", ondelete="CASCADE"), nullable=False, unique=True)
    response_strategy = Column(Enum(*RESPONSE_STRATEGIES, name="response_strategy"), nullable=True)
    mitigation_strategy = Column(Text, nullable=True)
    contingency_plan = Column(Text, nullable=True)
    fallback_plan = Column(Text, nullable=True)
    response_owner = Column(String(255), nullable=True)
    response_deadline = Column(DateTime(timezone=True), nullable=True)
    response_cost = Column(Float, nullable=True)
    response_effectiveness = Column(Integer, default=50, nullable=False)
    acceptance_criteria = Column(Text, nullable=True)
    triggers = Column(JSONType, default=list)
    created_by = _user_fk()
    updated_by = _user_fk()
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    risk = relationship("Risk", back_populates="response_plan")
    actions = relationship(
        "RiskResponseAction", back_populates="response_plan", cascade="all, delete-orphan", passive_deletes=True
    )


class RiskResponseAction(Base):
    __tablename__ = "risk_response_actions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    response_plan_id = _fk("risk_response_plans.id")
    description = Column(Text, nullable=False)
    status = Column(Enum(*ACTION_STATUSES, name="response_action_status"), default="PENDING", nullable=False)
    assigned_to = Column(String(255), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    response_plan = relationship("RiskResponsePlan", back_populates="actions")


class RiskIndicator(Base):
    """A key risk indicator monitored against a threshold."""

    __tablename__ = "risk_indicators"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    risk_id = _fk("risks.id")
    name = Column(String(255), nullable=False)
    threshold = Column(Float, nullable=False)
    current_value = Column(Float, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    triggered = Column(Boolean, default=False, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    risk = relationship("Risk", back_populates="indicators")


class RiskRequirementLink(Base):
    __tablename__ = "risk_requirement_links"
    __table_args__ = (UniqueConstraint("risk_id", "requirement_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    risk_id = _fk("risks.id")
    requirement_id = _fk("requirements.id")

    risk = relationship("Risk", back_populates="requirement_links")


class RiskTaskLink(Base):
    __tablename__ = "risk_task_links"
    __table_args__ = (UniqueConstraint("risk_id", "task_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    risk_id = _fk("risks.id")
    task_id = _fk("tasks.id")

    risk = relationship("Risk", back_populates="task_links")


# ── Tasks ─────────────────────────────────────────────────────────────────────


class Task(Base):
    """A unit of project work shown on the task board."""

    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = _fk("projects.id")
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    type = Column(Enum(*TASK_TYPES, name="task_type"), default="TASK", nullable=False)
    status = Column(Enum(*TASK_STATUSES, name="task_status"), default="TODO", nullable=False)
    priority = Column(Enum(*PRIORITIES, name="task_priority"), default="MEDIUM", nullable=False)
    assignee_id = _user_fk()
    due_date = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    sprint = Column(String(100), nullable=True)
    tags = Column(JSONType, default=list)
    estimated_hours = Column(Integer, nullable=True)
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    project = relationship("Project", back_populates="tasks")
    subtasks = relationship(
        "Subtask",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Subtask.position",
    )
    dependencies = relationship(
        "TaskDependency",
        foreign_keys="TaskDependency.dependent_task_id",
        back_populates="dependent_task",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    dependents = relationship(
        "TaskDependency",
        foreign_keys="TaskDependency.depends_on_task_id",
        back_populates="depends_on_task",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Subtask(Base):
    __tablename__ = "subtasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id = _fk("tasks.id")
    title = Column(String(500), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    task = relationship("Task", back_populates="subtasks")


class TaskDependency(Base):
    """Edge meaning ``dependent_task`` cannot finish before ``depends_on_task``."""

    __tablename__ = "task_dependencies"
    __table_args__ = (UniqueConstraint("dependent_task_id", "depends_on_task_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    dependent_task_id = _fk("tasks.id")
    depends_on_task_id = _fk("tasks.id")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    dependent_task = relationship("Task", foreign_keys=[dependent_task_id], back_populates="dependencies")
    depends_on_task = relationship("Task", foreign_keys=[depends_on_task_id], back_populates="dependents")


# ── Stakeholders ──────────────────────────────────────────────────────────────


class Stakeholder(Base):
    """A person or group with an interest in the project."""

    __tablename__ = "stakeholders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = _fk("projects.id")
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(255), nullable=True)
    organization = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    influence = Column(Enum(*STAKEHOLDER_LEVELS, name="stakeholder_influence"), default="medium", nullable=False)
    interest = Column(Enum(*STAKEHOLDER_LEVELS, name="stakeholder_interest"), default="medium", nullable=False)
    power = Column(Enum(*STAKEHOLDER_LEVELS, name="stakeholder_power"), default="medium", nullable=False)
    impact = Column(Enum(*STAKEHOLDER_LEVELS, name="stakeholder_impact"), default="medium", nullable=False)
    engagement_level = Column(
        Enum(*STAKEHOLDER_LEVELS, name="stakeholder_engagement"), default="medium", nullable=False
    )
    category = Column(String(50), default="external", nullable=False)

    engagement_approach = Column(Text, nullable=True)
    communication_plan = Column(Text, nullable=True)
    communication_channel = Column(String(100), nullable=True)
    engagement_frequency = Column(String(100), nullable=True)
    engagement_notes = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=True)
    language = Column(String(16), default="en")
    tags = Column(JSONType, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="stakeholders")
    history = relationship(
        "StakeholderHistory",
        back_populates="stakeholder",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StakeholderHistory.date.desc()",
    )


class StakeholderHistory(Base):
    """Engagement log entry (meeting, email, update, ...) for a stakeholder."""

    __tablename__ = "stakeholder_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    stakeholder_id = _fk("stakeholders.id")
    type = Column(String(50), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    status = Column(String(50), default="completed")
    date = Column(DateTime(timezone=True), server_default=func.now())
    user_id = _user_fk()
    metadata_ = Column("metadata", JSONType, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    stakeholder = relationship("Stakeholder", back_populates="history")


# ── Requirements ──────────────────────────────────────────────────────────────


class Requirement(Base):
    """A project requirement that RFCs, tasks and tests trace back to."""

    __tablename__ = "requirements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = _fk("projects.id")
    requirement_code = Column(String(32), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    type = Column(Enum(*REQUIREMENT_TYPES, name="requirement_type"), default="FUNCTIONAL", nullable=False)
    priority = Column(Enum(*SEVERITY_LEVELS, name="requirement_priority"), default="MEDIUM", nullable=False)
    status = Column(Enum(*REQUIREMENT_STATUSES, name="requirement_status"), default="DRAFT", nullable=False)
    owner_id = _user_fk()
    parent_id = Column(Uuid, ForeignKey("requirements.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="requirements")
    task_links = relationship(
        "RequirementTaskLink", back_populates="requirement", cascade="all, delete-orphan", passive_deletes=True
    )
    stakeholder_links = relationship(
        "RequirementStakeholder",
        back_populates="requirement",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    test_cases = relationship(
        "RequirementTestCase", back_populates="requirement", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def linked_task_ids(self) -> list[uuid.UUID]:
        return [link.task_id for link in self.task_links]

    @property
    def stakeholder_ids(self) -> list[uuid.UUID]:
        return [link.stakeholder_id for link in self.stakeholder_links]


class RequirementTaskLink(Base):
    __tablename__ = "requirement_task_links"
    __table_args__ = (UniqueConstraint("requirement_id", "task_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requirement_id = _fk("requirements.id")
    task_id = _fk("tasks.id")

    requirement = relationship("Requirement", back_populates="task_links")
    task = relationship("Task")


class RequirementStakeholder(Base):
    __tablename__ = "requirement_stakeholders"
    __table_args__ = (UniqueConstraint("requirement_id", "stakeholder_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requirement_id = _fk("requirements.id")
    stakeholder_id = _fk("stakeholders.id")

    requirement = relationship("Requirement", back_populates="stakeholder_links")
    stakeholder = relationship("Stakeholder")


class RequirementTestCase(Base):
    __tablename__ = "requirement_test_cases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requirement_id = _fk("requirements.id")
    title = Column(String(500), nullable=False)
    status = Column(Enum(*TEST_CASE_STATUSES, name="test_case_status"), default="NOT_RUN", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    requirement = relationship("Requirement", back_populates="test_cases")


# ── Requests for change ───────────────────────────────────────────────────────


class RFC(Base):
    """A request for change against a requirement."""

    __tablename__ = "rfcs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = _fk("projects.id")
    requirement_id = _fk("requirements.id")
    rfc_code = Column(String(32), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    reason = Column(Text, default="")
    impact = Column(Text, nullable=True)
    impact_level = Column(Enum(*SEVERITY_LEVELS, name="rfc_impact_level"), default="MEDIUM", nullable=False)
    risk = Column(Text, nullable=True)
    cost_estimate = Column(Float, nullable=True)
    schedule_impact = Column(String(255), nullable=True)
    time_estimate = Column(String(255), nullable=True)
    affected_tasks = Column(JSONType, default=list)
    affected_releases = Column(JSONType, default=list)
    status = Column(Enum(*RFC_STATUSES, name="rfc_status"), default="PROPOSED", nullable=False)
    requester_id = _user_fk()
    reviewer_id = _user_fk()
    approved_by = _user_fk()
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    implemented_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="rfcs")
    requirement = relationship("Requirement")
    comments = relationship(
        "RFCComment",
        back_populates="rfc",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RFCComment.created_at.desc()",
    )
    history = relationship(
        "RFCHistory",
        back_populates="rfc",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RFCHistory.created_at.desc()",
    )


class RFCComment(Base):
    __tablename__ = "rfc_comments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rfc_id = _fk("rfcs.id")
    user_id = _user_fk()
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    rfc = relationship("RFC", back_populates="comments")


class RFCHistory(Base):
    __tablename__ = "rfc_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rfc_id = _fk("rfcs.id")
    user_id = _user_fk()
    action = Column(Enum(*RFC_HISTORY_ACTIONS, name="rfc_history_action"), nullable=False)
    changes = Column(JSONType, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    rfc = relationship("RFC", back_populates="history")


# ── Reports ───────────────────────────────────────────────────────────────────


class Report(Base):
    """A saved (optionally scheduled) report definition."""

    __tablename__ = "reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    type = Column(String(50), default="custom", nullable=False)
    data_source = Column(String(100), nullable=True)
    config = Column(JSONType, default=dict)
    project_id = _fk("projects.id", nullable=True)
    created_by = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    shared_with = Column(JSONType, default=list)
    is_favorite = Column(Boolean, default=False, nullable=False)
    schedule = Column(String(20), nullable=True)  # "daily" | "weekly"
    format = Column(String(10), default="xlsx", nullable=False)
    permissions = Column(String(20), default="edit", nullable=False)
    last_modified = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_run = Column(DateTime(timezone=True), nullable=True)
    run_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def visible_to(self, user_id: str) -> bool:
        return self.created_by == user_id or user_id in (self.shared_with or [])
