from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]

CustomerStatus = Literal["active", "lead", "churned"]
ProductStatus = Literal["active", "inactive", "discontinued"]
DealStatus = Literal["open", "won", "lost"]
TaskStatus = Literal["pending", "completed"]
TicketStatus = Literal["open", "in-progress", "closed"]
Priority = Literal["high", "medium", "low"]
RelatedEntityType = Literal[
    "customer", "product", "deal", "task", "ticket", "user", "pipeline_stage", "internal", "system"
]

DEFAULT_STAGE_COLOR = "#3B82F6"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordModel(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: UtcDatetime


class PartialUpdate(CamelModel):
    """Base for update payloads: omitted fields are left untouched by the merge."""

    non_nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_null_for_non_nullable(self) -> "PartialUpdate":
        nulled = sorted(
            name for name in self.non_nullable_fields if name in self.model_fields_set and getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UserCreate(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    full_name: str | None = None
    email: EmailStr | None = None
    role: str | None = None
    avatar_url: str | None = None


class UserRecord(RecordModel):
    username: str
    password: str
    full_name: str | None = None
    email: str | None = None
    role: str | None = None
    avatar_url: str | None = None


class UserRead(RecordModel):
    username: str
    full_name: str | None = None
    email: str | None = None
    role: str | None = None
    avatar_url: str | None = None


class CustomerCreate(CamelModel):
    name: str = Field(min_length=1)
    company: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    status: CustomerStatus = "active"
    address: str | None = None
    avatar_url: str | None = None
    last_contact: UtcDatetime | None = None
    churn_risk: int = Field(default=0, ge=0, le=5)
    total_revenue: float = Field(default=0, ge=0)


class CustomerUpdate(PartialUpdate):
    non_nullable_fields = frozenset({"name", "status", "churn_risk", "total_revenue"})

    name: str | None = Field(default=None, min_length=1)
    company: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    status: CustomerStatus | None = None
    address: str | None = None
    avatar_url: str | None = None
    last_contact: UtcDatetime | None = None
    churn_risk: int | None = Field(default=None, ge=0, le=5)
    total_revenue: float | None = Field(default=None, ge=0)


class CustomerRead(RecordModel):
    name: str
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    status: CustomerStatus = "active"
    address: str | None = None
    avatar_url: str | None = None
    last_contact: UtcDatetime | None = None
    churn_risk: int = 0
    total_revenue: float = 0


class ProductCreate(CamelModel):
    name: str = Field(min_length=1)
    description: str | None = None
    price: float = Field(ge=0)
    category: str | None = None
    image_url: str | None = None
    inventory: int = Field(default=0, ge=0)
    status: ProductStatus = "active"


class ProductUpdate(PartialUpdate):
    non_nullable_fields = frozenset({"name", "price", "inventory", "status"})

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    category: str | None = None
    image_url: str | None = None
    inventory: int | None = Field(default=None, ge=0)
    status: ProductStatus | None = None


class ProductRead(RecordModel):
    name: str
    description: str | None = None
    price: float
    category: str | None = None
    image_url: str | None = None
    inventory: int = 0
    status: ProductStatus = "active"


class PipelineStageCreate(CamelModel):
    name: str = Field(min_length=1)
    order: int
    color: str = DEFAULT_STAGE_COLOR


class PipelineStageUpdate(PartialUpdate):
    non_nullable_fields = frozenset({"name", "order", "color"})

    name: str | None = Field(default=None, min_length=1)
    order: int | None = None
    color: str | None = None


class PipelineStageRead(RecordModel):
    name: str
    order: int
    color: str = DEFAULT_STAGE_COLOR


class DealCreate(CamelModel):
    title: str = Field(min_length=1)
    customer_id: int
    value: float = Field(ge=0)
    stage_id: int
    owner_id: int | None = None
    expected_close_date: UtcDatetime | None = None
    probability: int = Field(default=0, ge=0, le=100)
    status: DealStatus = "open"
    notes: str | None = None


class DealUpdate(PartialUpdate):
    non_nullable_fields = frozenset({"title", "customer_id", "value", "stage_id", "probability", "status"})

    title: str | None = Field(default=None, min_length=1)
    customer_id: int | None = None
    value: float | None = Field(default=None, ge=0)
    stage_id: int | None = None
    owner_id: int | None = None
    expected_close_date: UtcDatetime | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    status: DealStatus | None = None
    notes: str | None = None


class DealRead(RecordModel):
    title: str
    customer_id: int
    value: float
    stage_id: int
    owner_id: int | None = None
    expected_close_date: UtcDatetime | None = None
    probability: int = 0
    status: DealStatus = "open"
    notes: str | None = None


class TaskCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str | None = None
    due_date: UtcDatetime | None = None
    status: TaskStatus = "pending"
    priority: Priority = "medium"
    assigned_to: int | None = None
    related_to: RelatedEntityType | None = None
    related_id: int | None = None


class TaskUpdate(PartialUpdate):
    non_nullable_fields = frozenset({"title", "status", "priority"})

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    due_date: UtcDatetime | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    assigned_to: int | None = None
    related_to: RelatedEntityType | None = None
    related_id: int | None = None


class TaskRead(RecordModel):
    title: str
    description: str | None = None
    due_date: UtcDatetime | None = None
    status: TaskStatus = "pending"
    priority: Priority = "medium"
    assigned_to: int | None = None
    related_to: RelatedEntityType | None = None
    related_id: int | None = None


class TicketCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str | None = None
    customer_id: int | None = None
    assigned_to: int | None = None
    priority: Priority = "medium"
    status: TicketStatus = "open"
    category: str | None = None


class TicketUpdate(PartialUpdate):
    non_nullable_fields = frozenset({"title", "priority", "status"})

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    customer_id: int | None = None
    assigned_to: int | None = None
    priority: Priority | None = None
    status: TicketStatus | None = None
    category: str | None = None


class TicketRead(RecordModel):
    title: str
    description: str | None = None
    customer_id: int | None = None
    assigned_to: int | None = None
    priority: Priority = "medium"
    status: TicketStatus = "open"
    category: str | None = None


class ActivityCreate(CamelModel):
    user_id: int | None = None
    activity_type: str = Field(min_length=1)
    related_to: RelatedEntityType | None = None
    related_id: int | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class ActivityRead(RecordModel):
    user_id: int | None = None
    activity_type: str
    related_to: RelatedEntityType | None = None
    related_id: int | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class DashboardMetrics(CamelModel):
    total_revenue: float
    new_customers: int
    churn_rate: float
    avg_deal_size: float


class PipelineStageSummary(PipelineStageRead):
    count: int
    value: float


class TeamMemberPerformance(CamelModel):
    id: int
    name: str
    avatar_url: str | None = None
    value: float
    percentage_of_target: int
    growth: float


class DashboardStatsRead(CamelModel):
    metrics: DashboardMetrics
    pipeline_summary: list[PipelineStageSummary]
    team_performance: list[TeamMemberPerformance]
    recent_activities: list[ActivityRead]
    todays_tasks: list[TaskRead]
