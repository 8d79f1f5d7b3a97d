from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.domain.normalize import IsoDatetime, LowerEnum, StringList, UpperInput
from app.domain.permissions import Role
from app.domain.state_machine import InvoiceStatus


def now_utc() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid4())


class ProjectStatus(StrEnum):
    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskStatus(StrEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"


class TaskPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class PortfolioCategory(StrEnum):
    FULLSTACK = "FULLSTACK"
    FRONTEND = "FRONTEND"
    BACKEND = "BACKEND"
    MOBILE = "MOBILE"
    FUTURE = "FUTURE"
    PERSONAL = "PERSONAL"


SITE_CONFIGURATION_ID = "main"


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    actor_id: str | None = Field(default=None, index=True)
    actor_role: str | None = Field(default=None)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: Role = Field(default=Role.CUSTOMER, index=True)
    company: str | None = None
    phone: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True)
    description: str | None = None
    status: ProjectStatus = Field(default=ProjectStatus.PLANNING, index=True)
    start_date: datetime
    end_date: datetime | None = None
    client_id: str = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class ProjectFile(SQLModel, table=True):
    __tablename__ = "project_files"

    id: str = Field(default_factory=new_id, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    uploaded_by_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    name: str
    url: str = Field(index=True)
    size: int = 0
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    title: str = Field(index=True)
    description: str | None = None
    status: TaskStatus = Field(default=TaskStatus.TODO, index=True)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, index=True)
    due_date: datetime = Field(index=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    assigned_to_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class TaskComment(SQLModel, table=True):
    __tablename__ = "task_comments"

    id: str = Field(default_factory=new_id, primary_key=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)
    author_id: str = Field(foreign_key="users.id", index=True)
    content: str
    created_at: datetime = Field(default_factory=now_utc, index=True)


class TaskAttachment(SQLModel, table=True):
    __tablename__ = "task_attachments"

    id: str = Field(default_factory=new_id, primary_key=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)
    uploaded_by_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    name: str
    url: str = Field(index=True)
    size: int = 0
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Invoice(SQLModel, table=True):
    __tablename__ = "invoices"

    id: str = Field(default_factory=new_id, primary_key=True)
    number: str = Field(index=True, unique=True)
    amount: float = 0.0
    status: InvoiceStatus = Field(default=InvoiceStatus.UNPAID, index=True)
    due_date: datetime
    project_id: str = Field(foreign_key="projects.id", index=True)
    client_id: str = Field(foreign_key="users.id", index=True)
    paypal_order_id: str | None = Field(default=None, index=True)
    paypal_transaction_id: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class InvoiceItem(SQLModel, table=True):
    __tablename__ = "invoice_items"

    id: str = Field(default_factory=new_id, primary_key=True)
    invoice_id: str = Field(foreign_key="invoices.id", index=True)
    description: str
    quantity: float
    rate: float
    amount: float


class Payment(SQLModel, table=True):
    __tablename__ = "payments"

    id: str = Field(default_factory=new_id, primary_key=True)
    invoice_id: str = Field(foreign_key="invoices.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    amount: float
    method: str
    transaction_reference: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"

    id: str = Field(default_factory=new_id, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc, index=True)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: str = Field(default_factory=new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="conversations.id", index=True)
    sender_id: str = Field(foreign_key="users.id", index=True)
    content: str
    read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Testimonial(SQLModel, table=True):
    __tablename__ = "testimonials"

    id: str = Field(default_factory=new_id, primary_key=True)
    client_id: str = Field(foreign_key="users.id", index=True)
    content: str
    rating: int = 5
    position: str | None = None
    company: str | None = None
    is_active: bool = Field(default=True, index=True)
    order: int = 0
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class PortfolioItem(SQLModel, table=True):
    __tablename__ = "portfolio_items"

    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    description: str
    category: PortfolioCategory = Field(index=True)
    image_url: str | None = None
    demo_url: str | None = None
    github_url: str | None = None
    technologies: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    features: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    order: int = 0
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class SiteConfiguration(SQLModel, table=True):
    __tablename__ = "site_configuration"

    id: str = Field(default=SITE_CONFIGURATION_ID, primary_key=True)
    hero_title: str = ""
    hero_subtitle: str = ""
    hero_button_text: str = ""
    hero_button_link: str = ""
    about_heading: str = ""
    about_text: str = ""
    about_image_url: str = ""
    updated_at: datetime = Field(default_factory=now_utc)


class ContactSubmission(SQLModel, table=True):
    __tablename__ = "contact_submissions"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    email: str = Field(index=True)
    subject: str | None = None
    phone: str | None = None
    message: str
    read: bool = Field(default=False, index=True)
    user_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


RoleInput = Annotated[Role, UpperInput]
ProjectStatusInput = Annotated[ProjectStatus, UpperInput]
TaskStatusInput = Annotated[TaskStatus, UpperInput]
TaskPriorityInput = Annotated[TaskPriority, UpperInput]


class RegisterRequest(RequestModel):
    name: str
    email: str
    password: str
    company: str | None = None
    phone: str | None = None


class LoginRequest(RequestModel):
    email: str
    password: str


class UserCreate(RequestModel):
    name: str
    email: str
    password: str
    role: RoleInput = Role.CUSTOMER
    company: str | None = None
    phone: str | None = None


class UserUpdate(RequestModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: RoleInput | None = None
    company: str | None = None
    phone: str | None = None


class ProjectCreate(RequestModel):
    name: str
    client_id: str
    start_date: datetime
    description: str | None = None
    end_date: datetime | None = None
    status: ProjectStatusInput = ProjectStatus.PLANNING


class ProjectUpdate(RequestModel):
    name: str | None = None
    client_id: str | None = None
    start_date: datetime | None = None
    description: str | None = None
    end_date: datetime | None = None
    status: ProjectStatusInput | None = None


class TaskCreate(RequestModel):
    title: str
    project_id: str
    due_date: datetime
    description: str | None = None
    status: TaskStatusInput = TaskStatus.TODO
    priority: TaskPriorityInput = TaskPriority.MEDIUM
    assigned_to_id: str | None = None


class TaskUpdate(RequestModel):
    title: str | None = None
    due_date: datetime | None = None
    description: str | None = None
    status: TaskStatusInput | None = None
    priority: TaskPriorityInput | None = None
    assigned_to_id: str | None = None


class TaskCommentCreate(RequestModel):
    content: str


class InvoiceItemInput(RequestModel):
    description: str
    quantity: float = PydanticField(gt=0)
    rate: float = PydanticField(ge=0)


class InvoiceCreate(RequestModel):
    client_id: str
    project_id: str
    due_date: datetime
    items: list[InvoiceItemInput]


class CreateOrderRequest(RequestModel):
    invoice_id: str


class CaptureOrderRequest(RequestModel):
    order_id: str


class ConversationCreate(RequestModel):
    project_id: str
    name: str | None = None
    initial_message: str | None = None


class MessageCreate(RequestModel):
    content: str


class TestimonialCreate(RequestModel):
    content: str
    client_id: str
    rating: int = 5
    position: str | None = None
    company: str | None = None
    is_active: bool = True
    order: int = 0


class TestimonialUpdate(RequestModel):
    content: str | None = None
    client_id: str | None = None
    rating: int | None = None
    position: str | None = None
    company: str | None = None
    is_active: bool | None = None
    order: int | None = None


class PortfolioItemCreate(RequestModel):
    title: str
    description: str
    category: str
    image_url: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("imageUrl", "image", "image_url")
    )
    demo_url: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("demoUrl", "demoLink", "demo_url")
    )
    github_url: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("githubUrl", "githubLink", "github_url")
    )
    technologies: StringList = PydanticField(default_factory=list)
    features: StringList = PydanticField(default_factory=list)
    tags: StringList = PydanticField(default_factory=list)
    order: int = 0


class PortfolioItemUpdate(RequestModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    image_url: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("imageUrl", "image", "image_url")
    )
    demo_url: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("demoUrl", "demoLink", "demo_url")
    )
    github_url: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("githubUrl", "githubLink", "github_url")
    )
    technologies: StringList | None = None
    features: StringList | None = None
    tags: StringList | None = None
    order: int | None = None


class SiteConfigurationUpdate(RequestModel):
    hero_title: str | None = None
    hero_subtitle: str | None = None
    hero_button_text: str | None = None
    hero_button_link: str | None = None
    about_heading: str | None = None
    about_text: str | None = None
    about_image_url: str | None = None


class ContactCreate(RequestModel):
    name: str
    email: str
    message: str
    subject: str | None = None
    phone: str | None = None


class ContactReadUpdate(RequestModel):
    read: bool


class DeleteBlobRequest(RequestModel):
    url: str


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class ORMReadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PaginationRead(ORMReadModel):
    total: int
    page: int
    limit: int
    pages: int


class StatusMessageRead(ORMReadModel):
    message: str


class ClientRef(ORMReadModel):
    id: str
    name: str
    email: str


class UserRead(ORMReadModel):
    id: str
    name: str
    email: str
    role: Role
    company: str | None = None
    phone: str | None = None
    created_at: IsoDatetime
    updated_at: IsoDatetime


class UserPage(ORMReadModel):
    users: list[UserRead]
    pagination: PaginationRead


class CustomerRead(UserRead):
    project_count: int = 0
    active_project_count: int = 0
    testimonial_count: int = 0


class CustomerPage(ORMReadModel):
    customers: list[CustomerRead]
    pagination: PaginationRead


class SessionUserRead(ORMReadModel):
    id: str
    role: Role
    name: str
    email: str


class SessionRead(ORMReadModel):
    user: SessionUserRead


class LoginRead(ORMReadModel):
    token: str
    user: UserRead


class ProjectRead(ORMReadModel):
    id: str
    name: str
    description: str | None = None
    status: LowerEnum
    start_date: IsoDatetime
    end_date: IsoDatetime | None = None
    client_id: str
    client: ClientRef
    progress: int = 0
    created_at: IsoDatetime
    updated_at: IsoDatetime


class ProjectPage(ORMReadModel):
    projects: list[ProjectRead]
    pagination: PaginationRead


class ProjectTaskCounts(ORMReadModel):
    total: int
    completed: int
    overdue: int


class TeamMemberRead(ORMReadModel):
    id: str
    name: str
    email: str
    role: str


class DocumentRead(ORMReadModel):
    id: str
    name: str
    url: str
    size: int
    uploaded_at: IsoDatetime


class RecentTaskRead(ORMReadModel):
    id: str
    title: str
    status: LowerEnum
    priority: LowerEnum
    due_date: IsoDatetime
    assigned_to: str


class RecentMessageRead(ORMReadModel):
    id: str
    content: str
    sender: str
    sender_name: str
    timestamp: IsoDatetime


class ProjectDetailRead(ProjectRead):
    tasks: ProjectTaskCounts
    next_deadline: IsoDatetime | None = None
    team: list[TeamMemberRead]
    documents: list[DocumentRead]
    recent_tasks: list[RecentTaskRead]
    recent_messages: list[RecentMessageRead]


class AssigneeRef(ORMReadModel):
    id: str
    name: str


class TaskRead(ORMReadModel):
    id: str
    title: str
    description: str | None = None
    status: LowerEnum
    priority: LowerEnum
    due_date: IsoDatetime
    project_id: str
    project_name: str
    assigned_to: AssigneeRef | None = None
    created_at: IsoDatetime
    updated_at: IsoDatetime


class CommentAuthorRead(ORMReadModel):
    id: str
    name: str
    role: Role


class TaskCommentRead(ORMReadModel):
    id: str
    content: str
    created_at: IsoDatetime
    author: CommentAuthorRead


class AttachmentRead(ORMReadModel):
    id: str
    name: str
    url: str
    size: int
    uploaded_at: IsoDatetime


class TaskDetailRead(TaskRead):
    comments: list[TaskCommentRead]
    attachments: list[AttachmentRead]


class ProjectOption(ORMReadModel):
    id: str
    name: str


class TaskPage(ORMReadModel):
    tasks: list[TaskRead]
    projects: list[ProjectOption]
    pagination: PaginationRead


class InvoiceItemRead(ORMReadModel):
    id: str
    description: str
    quantity: float
    rate: float
    amount: float


class PaymentRead(ORMReadModel):
    id: str
    amount: float
    method: str
    transaction_reference: str | None = None
    created_at: IsoDatetime


class InvoiceRead(ORMReadModel):
    id: str
    number: str
    amount: float
    status: InvoiceStatus
    due_date: IsoDatetime
    project_id: str
    project_name: str
    client: ClientRef
    items: list[InvoiceItemRead]
    payments: list[PaymentRead]
    paypal_order_id: str | None = None
    created_at: IsoDatetime
    updated_at: IsoDatetime


class InvoicePage(ORMReadModel):
    invoices: list[InvoiceRead]
    pagination: PaginationRead


class InvoiceStatsRead(ORMReadModel):
    total_revenue: float
    outstanding_amount: float
    paid_invoices: int
    unpaid_invoices: int
    overdue_invoices: int


class OrderRead(ORMReadModel):
    order_id: str
    approve_url: str


class CaptureRead(ORMReadModel):
    status: str
    order_id: str
    invoice_id: str
    transaction_id: str | None = None


class LastMessageRead(ORMReadModel):
    content: str
    sender: str
    timestamp: IsoDatetime


class ConversationRead(ORMReadModel):
    id: str
    name: str
    project_id: str
    project_name: str
    customer: ClientRef
    last_message: LastMessageRead | None = None
    unread_count: int = 0
    created_at: IsoDatetime
    updated_at: IsoDatetime


class ConversationPage(ORMReadModel):
    conversations: list[ConversationRead]
    pagination: PaginationRead


class ChatMessageRead(ORMReadModel):
    id: str
    conversation_id: str
    content: str
    sender_id: str
    sender_name: str
    sender_role: Role | None = None
    sender: str
    read: bool
    created_at: IsoDatetime


class ChatMessageList(ORMReadModel):
    messages: list[ChatMessageRead]


class MarkReadRead(ORMReadModel):
    updated: int


class TestimonialRead(ORMReadModel):
    id: str
    content: str
    rating: int
    client_name: str
    position: str | None = None
    company: str | None = None
    created_at: IsoDatetime


class TestimonialAdminRead(TestimonialRead):
    client_id: str
    client_email: str
    is_active: bool
    order: int
    updated_at: IsoDatetime


class PortfolioItemRead(ORMReadModel):
    id: str
    title: str
    description: str
    category: PortfolioCategory
    image_url: str | None = None
    demo_url: str | None = None
    github_url: str | None = None
    technologies: list[str]
    features: list[str]
    tags: list[str]
    order: int
    created_at: IsoDatetime
    updated_at: IsoDatetime


class PortfolioList(ORMReadModel):
    projects: list[PortfolioItemRead]


class SiteConfigurationRead(ORMReadModel):
    id: str
    hero_title: str = ""
    hero_subtitle: str = ""
    hero_button_text: str = ""
    hero_button_link: str = ""
    about_heading: str = ""
    about_text: str = ""
    about_image_url: str = ""
    updated_at: IsoDatetime | None = None


class ContactSubmissionRead(ORMReadModel):
    id: str
    name: str
    email: str
    subject: str | None = None
    phone: str | None = None
    message: str
    read: bool
    user_id: str | None = None
    created_at: IsoDatetime


class ContactPage(ORMReadModel):
    submissions: list[ContactSubmissionRead]
    pagination: PaginationRead


class ContactCreatedRead(ORMReadModel):
    id: str
    message: str


class AdminStatsRead(ORMReadModel):
    total_customers: int
    active_projects: int
    completed_projects: int
    tasks_completed: int
    pending_tasks: int
    open_inquiries: int
    monthly_revenue: float
    total_revenue: float


class CustomerStatsRead(ORMReadModel):
    active_projects: int
    completed_projects: int
    pending_tasks: int
    completed_tasks: int
    total_invoices: int
    unpaid_invoices: int
    outstanding_amount: float
    unread_messages: int
    next_deadline: IsoDatetime | None = None


class ActivityRead(ORMReadModel):
    id: str
    type: str
    title: str
    description: str
    timestamp: IsoDatetime


class ActivityList(ORMReadModel):
    activities: list[ActivityRead]


class NotificationRead(ORMReadModel):
    id: str
    type: str
    target_id: str
    message: str
    read: bool
    time: IsoDatetime
    link: str | None = None


class NotificationList(ORMReadModel):
    notifications: list[NotificationRead]



class UploadRead(ORMReadModel):
    url: str
    pathname: str
    size: int
    content_type: str
