"""
Request body models.

Field names follow the JSON the clients send (camelCase).
"""

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ValidationFailed

Priority = Literal["low", "medium", "high", "urgent"]
TaskStatus = Literal["pending", "assigned", "in_progress", "completed", "overdue", "blocked", "cancelled"]

M = TypeVar("M", bound=BaseModel)


class Body(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


def parse(model: Type[M], data: Any) -> M:
    """
    Validate a decoded JSON body.

    Raises:
        ValidationFailed: With one entry per invalid field
    """
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationFailed("Validation failed", errors=errors)


def changes(body: BaseModel) -> Dict[str, Any]:
    """Only the fields the client actually sent."""
    return body.model_dump(exclude_unset=True)


# ============================================================================
# Auth
# ============================================================================

class LoginRequest(Body):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class RefreshRequest(Body):
    refresh_token: str = Field(min_length=1)


# ============================================================================
# Tasks
# ============================================================================

class TaskCreate(Body):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    assignedTo: str
    team: Optional[str] = None
    department: Optional[str] = None
    priority: Priority = "medium"
    deadline: Optional[str] = None
    isPublic: bool = False
    tags: List[str] = []


class TaskUpdate(Body):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    deadline: Optional[str] = None
    progress: Optional[float] = Field(default=None, ge=0, le=100)
    isPublic: Optional[bool] = None
    team: Optional[str] = None
    department: Optional[str] = None


class StatusUpdate(Body):
    status: TaskStatus
    notes: Optional[str] = None


class ProgressUpdate(Body):
    progress: float = Field(ge=0, le=100)
    notes: Optional[str] = None


class NoteCreate(Body):
    text: str = Field(min_length=1)
    type: str = "comment"


class BlockerCreate(Body):
    description: str = Field(min_length=1)
    type: Optional[str] = None
    estimatedResolution: Optional[str] = None


class BlockerResolve(Body):
    blockerId: str
    resolved: bool = True


class AssignRequest(Body):
    userId: str
    priority: Optional[Priority] = None
    deadline: Optional[str] = None
    notes: Optional[str] = None


class ReassignRequest(Body):
    newUserId: str
    reason: Optional[str] = None


# ============================================================================
# Notifications
# ============================================================================

class NotificationCreate(Body):
    user: str
    type: Literal["task", "message", "reminder", "achievement", "system", "team", "kpi"]
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    priority: Priority = "medium"
    relatedEntity: Optional[Dict[str, Any]] = None


# ============================================================================
# Chat
# ============================================================================

class ConversationSettings(Body):
    allowReactions: bool = True
    allowEditing: bool = True
    allowDeletion: bool = True


class ConversationCreate(Body):
    type: Literal["direct", "group", "team", "project"]
    participants: List[str] = Field(min_length=1)
    name: Optional[str] = None
    teamId: Optional[str] = None
    settings: Optional[ConversationSettings] = None


class MessageCreate(Body):
    content: str = Field(min_length=1, max_length=5000)
    type: Literal["text", "file", "image", "system"] = "text"
    replyTo: Optional[str] = None


class MessageUpdate(Body):
    content: str = Field(min_length=1, max_length=5000)


class ReactionCreate(Body):
    emoji: str = Field(min_length=1, max_length=16)


# ============================================================================
# Team
# ============================================================================

Role = Literal["admin", "employer", "manager", "team_lead", "employee", "viewer"]


class MemberAdd(Body):
    email: str
    teamId: str
    departmentId: Optional[str] = None
    role: Role = "employee"
    position: Optional[str] = None


class MemberUpdate(Body):
    name: Optional[str] = Field(default=None, min_length=1)
    role: Optional[Role] = None
    position: Optional[str] = None
    department: Optional[str] = None


class ReportRequest(Body):
    teamId: str
    reportType: Literal["performance", "productivity", "workload", "skills", "comprehensive"]
    timeframe: Optional[str] = None


# ============================================================================
# Files
# ============================================================================

class FileRegister(Body):
    filename: str = Field(min_length=1)
    originalName: Optional[str] = None
    url: str = Field(min_length=1)
    mimeType: str = "application/octet-stream"
    fileSize: int = Field(default=0, ge=0)
    task: Optional[str] = None
    team: Optional[str] = None
    department: Optional[str] = None
    conversation: Optional[str] = None
    isPublic: bool = False


class FileShare(Body):
    userId: str
    permission: Literal["view", "edit", "admin"] = "view"


# ============================================================================
# KPIs
# ============================================================================

Period = Literal["weekly", "monthly", "quarterly", "yearly"]


class KpiCreate(Body):
    name: str = Field(min_length=1)
    description: str = ""
    targetValue: float = Field(ge=0)
    currentValue: float = Field(default=0, ge=0)
    assignedTo: str
    team: Optional[str] = None
    period: Period = "monthly"


class KpiUpdate(Body):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    targetValue: Optional[float] = Field(default=None, ge=0)
    currentValue: Optional[float] = Field(default=None, ge=0)
    period: Optional[Period] = None
    team: Optional[str] = None


class KpiProgress(Body):
    currentValue: float = Field(ge=0)


# ============================================================================
# Roles
# ============================================================================

class PermissionEntry(Body):
    resource: str = Field(min_length=1)
    actions: List[Literal["create", "read", "update", "delete", "assign", "approve"]] = []


class RoleCreate(Body):
    name: str = Field(min_length=1, max_length=50)
    description: str = ""
    permissions: List[PermissionEntry] = []
    department: Optional[str] = None
    team: Optional[str] = None
    level: int = Field(default=1, ge=1, le=10)


class RoleUpdate(Body):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    permissions: Optional[List[PermissionEntry]] = None
    department: Optional[str] = None
    team: Optional[str] = None
    level: Optional[int] = Field(default=None, ge=1, le=10)
    isActive: Optional[bool] = None


# ============================================================================
# Departments
# ============================================================================

class DepartmentCreate(Body):
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    code: Optional[str] = Field(default=None, max_length=10)
    head: Optional[str] = None
    parentDepartment: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class DepartmentUpdate(Body):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    code: Optional[str] = Field(default=None, max_length=10)
    head: Optional[str] = None
    parentDepartment: Optional[str] = None
    isActive: Optional[bool] = None
    settings: Optional[Dict[str, Any]] = None


# ============================================================================
# Users
# ============================================================================

class ProfileUpdate(Body):
    name: Optional[str] = Field(default=None, min_length=1)
    position: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar: Optional[str] = None
    skills: Optional[List[str]] = None
    timezone: Optional[str] = None


class UserUpdate(ProfileUpdate):
    role: Optional[Role] = None
    team: Optional[str] = None
    department: Optional[str] = None
    isActive: Optional[bool] = None
