"""Data models - SQLAlchemy ORM and Pydantic schemas."""

from keystone.models.db import (
    RFC,
    Base,
    Project,
    ProjectMember,
    Report,
    Requirement,
    Risk,
    Stakeholder,
    Task,
    TaskDependency,
    User,
    Workspace,
    WorkspaceMember,
)

__all__ = [
    "Base",
    "User",
    "Workspace",
    "WorkspaceMember",
    "Project",
    "ProjectMember",
    "Risk",
    "Task",
    "TaskDependency",
    "Stakeholder",
    "Requirement",
    "RFC",
    "Report",
]
