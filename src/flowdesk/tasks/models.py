# src/flowdesk/tasks/models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """Workflow stage. Any transition is legal; the order is display order."""

    BACKLOG = "Backlog"
    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    DONE = "Done"

    @classmethod
    def from_api(cls, raw: Any) -> TaskStatus:
        try:
            return cls(str(raw).strip())
        except ValueError:
            raise ValueError(f"unknown task status: {raw!r}") from None


class TaskPriority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def from_api(cls, raw: Any) -> TaskPriority:
        if raw is None or raw == "":
            return cls.MEDIUM
        try:
            return cls(str(raw).strip())
        except ValueError:
            raise ValueError(f"unknown task priority: {raw!r}") from None


class Role(StrEnum):
    ADMIN = "Admin"
    MEMBER = "Member"

    @classmethod
    def from_api(cls, raw: Any) -> Role:
        # Anything the server does not call Admin gets member rights client-side.
        return cls.ADMIN if str(raw or "").strip() == cls.ADMIN.value else cls.MEMBER


STAGES: tuple[TaskStatus, ...] = (
    TaskStatus.BACKLOG,
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)

PRIORITIES: tuple[TaskPriority, ...] = (TaskPriority.LOW, TaskPriority.MEDIUM, TaskPriority.HIGH)


def _entity_id(payload: dict[str, Any]) -> str:
    raw = payload.get("_id", payload.get("id"))
    if raw is None or str(raw).strip() == "":
        raise ValueError("entity payload has no id")
    return str(raw)


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw)
    return s if s.strip() else None


def parse_due_date(raw: Any) -> datetime | None:
    """
    Parse a due date from the wire.

    Accepts ISO-8601 timestamps (a trailing "Z" included) and bare YYYY-MM-DD
    dates (what the date input sends). Naive values are taken as UTC.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, date):
        dt = datetime(raw.year, raw.month, raw.day)
    else:
        s = str(raw).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def format_due_date(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class EntityRef:
    """
    A reference to another entity.

    The service sends references either as a bare id or populated as
    {"_id": ..., "name": ...}; both shapes end up here.
    """

    id: str
    name: str | None = None

    @classmethod
    def from_api(cls, raw: Any) -> EntityRef | None:
        if raw is None or raw == "":
            return None
        if isinstance(raw, dict):
            return cls(id=_entity_id(raw), name=_opt_str(raw.get("name")))
        return cls(id=str(raw))


@dataclass(frozen=True, slots=True)
class Organization:
    id: str
    name: str

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Organization:
        return cls(id=_entity_id(payload), name=str(payload.get("name") or ""))


@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str
    email: str
    role: Role
    org_id: str | None = None
    org_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> User:
        org = EntityRef.from_api(payload.get("orgId", payload.get("organization")))
        return cls(
            id=_entity_id(payload),
            name=str(payload.get("name") or ""),
            email=str(payload.get("email") or ""),
            role=Role.from_api(payload.get("role")),
            org_id=org.id if org else None,
            org_name=_opt_str(payload.get("orgName")) or (org.name if org else None),
        )


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str
    description: str | None = None
    created_by: str | None = None
    org_id: str | None = None

    # Computed by the service; read-only on the client.
    completion_percentage: int = 0
    done_tasks: int = 0
    total_tasks: int = 0

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Project:
        creator = EntityRef.from_api(payload.get("createdBy"))
        org = EntityRef.from_api(payload.get("orgId"))
        return cls(
            id=_entity_id(payload),
            name=str(payload.get("name") or ""),
            description=_opt_str(payload.get("description")),
            created_by=creator.id if creator else None,
            org_id=org.id if org else None,
            completion_percentage=int(payload.get("completionPercentage") or 0),
            done_tasks=int(payload.get("doneTasks") or 0),
            total_tasks=int(payload.get("totalTasks") or 0),
        )


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus
    priority: TaskPriority
    project: EntityRef

    description: str | None = None
    due_date: datetime | None = None
    assignee: EntityRef | None = None
    org_id: str | None = None

    @property
    def project_id(self) -> str:
        return self.project.id

    @property
    def assignee_id(self) -> str | None:
        return self.assignee.id if self.assignee is not None else None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Task:
        project = EntityRef.from_api(payload.get("projectId"))
        if project is None:
            raise ValueError("task payload has no projectId")
        org = EntityRef.from_api(payload.get("orgId"))
        return cls(
            id=_entity_id(payload),
            title=str(payload.get("title") or ""),
            status=TaskStatus.from_api(payload.get("status")),
            priority=TaskPriority.from_api(payload.get("priority")),
            project=project,
            description=_opt_str(payload.get("description")),
            due_date=parse_due_date(payload.get("dueDate")),
            assignee=EntityRef.from_api(payload.get("assignedTo")),
            org_id=org.id if org else None,
        )


@dataclass(frozen=True, slots=True)
class ProjectDraft:
    """Fields a user fills in to create or edit a project."""

    name: str
    description: str = ""

    def to_api(self) -> dict[str, Any]:
        return {"name": self.name.strip(), "description": self.description.strip()}


@dataclass(frozen=True, slots=True)
class TaskDraft:
    """Fields a user fills in to create or edit a task."""

    title: str
    project_id: str
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    assignee_id: str | None = None

    def to_api(self, *, clear_absent: bool = False) -> dict[str, Any]:
        """Request body for the task endpoints.

        Absent optionals are omitted on create. A partial update keeps fields it
        does not mention, so edits pass `clear_absent` to send explicit nulls.
        """
        out: dict[str, Any] = {
            "title": self.title.strip(),
            "description": self.description.strip(),
            "status": self.status.value,
            "priority": self.priority.value,
            "projectId": self.project_id,
        }
        if self.due_date is not None:
            out["dueDate"] = format_due_date(self.due_date)
        elif clear_absent:
            out["dueDate"] = None
        if self.assignee_id:
            out["assignedTo"] = self.assignee_id
        elif clear_absent:
            out["assignedTo"] = None
        return out

    @classmethod
    def from_task(cls, task: Task) -> TaskDraft:
        """Prefill an edit form from a loaded task."""
        return cls(
            title=task.title,
            project_id=task.project_id,
            description=task.description or "",
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            assignee_id=task.assignee_id,
        )
