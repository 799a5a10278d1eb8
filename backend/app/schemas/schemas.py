"""
Pydantic schemas for API request/response models.

Responses are serialised with camelCase aliases (`averageScore`,
`csrfToken`, ...). Requests accept either the alias or the field name.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ── Auth ──

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserProfile(CamelModel):
    id: int
    email: str
    name: str | None = None
    role: str
    employee_id: str | None = None
    department: str | None = None
    team_leader_id: int | None = None
    is_active: bool = True


class LoginResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfile


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class CsrfTokenResponse(CamelModel):
    csrf_token: str


class UserPermissionsResponse(CamelModel):
    role: str
    permissions: list[str]


# ── Agents ──

class AgentSummary(CamelModel):
    id: int
    name: str | None
    email: str
    employee_id: str | None = None
    department: str | None = None
    team_leader_id: int | None = None
    average_score: float = 0
    metrics_count: int = 0


class AgentDetail(AgentSummary):
    team_leader_name: str | None = None
    created_at: datetime | None = None


# ── Scorecards ──

class ScorecardRawData(CamelModel):
    scheduled_hours: float | None = Field(None, ge=0)
    actual_hours: float | None = Field(None, ge=0)
    scheduled_days: int | None = Field(None, ge=0)
    days_present: int | None = Field(None, ge=0)
    total_shifts: int | None = Field(None, ge=0)
    on_time_arrivals: int | None = Field(None, ge=0)
    total_breaks: int | None = Field(None, ge=0)
    breaks_within_limit: int | None = Field(None, ge=0)
    tasks_assigned: int | None = Field(None, ge=0)
    tasks_completed: int | None = Field(None, ge=0)
    expected_output: float | None = Field(None, ge=0)
    actual_output: float | None = Field(None, ge=0)
    total_tasks: int | None = Field(None, ge=0)
    error_free_tasks: int | None = Field(None, ge=0)
    standard_time: float | None = Field(None, ge=0)
    actual_time_spent: float | None = Field(None, ge=0)


class LegacyMetrics(CamelModel):
    service: float | None = None
    productivity: float | None = None
    quality: float | None = None
    assiduity: float | None = None
    performance: float | None = None
    adherence: float | None = None
    lateness: float | None = None
    break_exceeds: float | None = None


class ScorecardSaveRequest(CamelModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    raw_data: ScorecardRawData | None = None
    metrics: LegacyMetrics | None = None
    weights: dict[str, float] | None = None
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _needs_input(self):
        if self.raw_data is None and self.metrics is None:
            raise ValueError("Either rawData or metrics must be provided")
        return self


class AgentMetricSchema(CamelModel):
    id: int
    agent_id: int
    month: int
    year: int

    schedule_adherence: float | None = None
    attendance_rate: float | None = None
    punctuality_score: float | None = None
    break_compliance: float | None = None
    task_completion_rate: float | None = None
    productivity_index: float | None = None
    quality_score: float | None = None
    efficiency_rate: float | None = None

    schedule_adherence_weight: float | None = None
    attendance_rate_weight: float | None = None
    punctuality_score_weight: float | None = None
    break_compliance_weight: float | None = None
    task_completion_rate_weight: float | None = None
    productivity_index_weight: float | None = None
    quality_score_weight: float | None = None
    efficiency_rate_weight: float | None = None

    service: float | None = None
    productivity: float | None = None
    quality: float | None = None
    assiduity: float | None = None
    performance: float | None = None
    adherence: float | None = None
    lateness: float | None = None
    break_exceeds: float | None = None

    total_score: float | None = None
    percentage: float | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ScorecardAgent(CamelModel):
    id: int
    name: str | None
    email: str
    employee_id: str | None = None
    department: str | None = None


class ScorecardResponse(CamelModel):
    agent: ScorecardAgent
    metrics: list[AgentMetricSchema]
    trends: dict[str, float] = {}
    yearly_average: dict[str, float] | None = None
    year: int
    month: int | None = None


class MessageResponse(BaseModel):
    message: str


# ── Roles ──

class RolePermissionItem(CamelModel):
    id: str
    name: str
    description: str | None = None
    category: str | None = None
    enabled: bool


class RoleSummary(CamelModel):
    role: str
    display_name: str
    description: str
    user_count: int
    permissions: list[RolePermissionItem]


class RolePermissionToggle(CamelModel):
    id: str
    enabled: bool


class RolePermissionsUpdate(CamelModel):
    permissions: list[RolePermissionToggle]


# ── Coaching sessions ──

class SessionStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


def _naive_utc(value: datetime | None) -> datetime | None:
    # Columns are timezone-naive and hold UTC
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SessionCreate(CamelModel):
    agent_id: int
    scheduled_date: datetime
    preparation_notes: str | None = Field(None, max_length=5000)
    duration: int = Field(60, ge=5, le=480)

    @field_validator("scheduled_date")
    @classmethod
    def _scheduled_utc(cls, value: datetime) -> datetime:
        return _naive_utc(value)


class SessionUpdate(CamelModel):
    """Outcome of a session. Saving it marks the session COMPLETED."""
    session_notes: str | None = Field(None, max_length=10000)
    follow_up_date: datetime | None = None
    current_score: float | None = Field(None, ge=0, le=100)

    @field_validator("follow_up_date")
    @classmethod
    def _follow_up_utc(cls, value: datetime | None) -> datetime | None:
        return _naive_utc(value)


class SessionStatusUpdate(CamelModel):
    status: SessionStatus


class SessionSchema(CamelModel):
    id: int
    agent_id: int
    team_leader_id: int
    scheduled_date: datetime
    session_date: datetime | None = None
    status: str
    previous_score: float | None = None
    current_score: float | None = None
    preparation_notes: str | None = None
    session_notes: str | None = None
    follow_up_date: datetime | None = None
    duration: int
    created_at: datetime | None = None


class SessionListResponse(CamelModel):
    sessions: list[SessionSchema]
    total: int


# ── Quick notes ──

class NoteCategory(str, Enum):
    PERFORMANCE = "PERFORMANCE"
    BEHAVIOR = "BEHAVIOR"
    TRAINING = "TRAINING"
    OTHER = "OTHER"


class QuickNoteCreate(CamelModel):
    content: str = Field(..., min_length=1, max_length=500)
    category: NoteCategory
    agent_id: int
    is_private: bool = False


class QuickNoteSchema(CamelModel):
    id: int
    content: str
    category: str
    agent_id: int
    author_id: int
    is_private: bool
    created_at: datetime | None = None


class QuickNoteListResponse(CamelModel):
    quick_notes: list[QuickNoteSchema]
    total: int
    page: int
    limit: int
    pages: int
