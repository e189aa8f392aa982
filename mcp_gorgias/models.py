"""Pydantic models for Gorgias entities and tool requests."""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Generic, Literal, TypeVar

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

T = TypeVar("T")


class StrictBaseModel(BaseModel):
    """Base model with strict validation that forbids extra fields.

    This ensures that typos or incorrect field names in request parameters
    are caught early with clear validation errors rather than being silently ignored.
    String fields are automatically stripped of leading/trailing whitespace.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class ResponseFormat(str, Enum):
    """Output format for tool responses.

    Attributes:
        MARKDOWN: Human-readable markdown format
        JSON: Machine-readable JSON format with full metadata
    """

    MARKDOWN = "markdown"
    JSON = "json"


class ExtractFormat(str, Enum):
    """Output format for customer email extraction."""

    JSON = "json"
    CSV = "csv"
    TABLE = "table"


class MessageType(str, Enum):
    """Reply message type.

    Attributes:
        OUTGOING: Agent to customer email
        INTERNAL_NOTE: Agent to agent note, never sent to the customer
        INCOMING: Simulated message from the customer
    """

    OUTGOING = "outgoing"
    INTERNAL_NOTE = "internal-note"
    INCOMING = "incoming"


def _normalize_format(v: str) -> str:
    """Normalize response format to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


def _strip_angle_brackets(v: str) -> str:
    """Remove markup characters from free-text filter values."""
    return v.replace("<", "").replace(">", "").strip()


ResponseFormatInput = Annotated[ResponseFormat, BeforeValidator(_normalize_format)]
ExtractFormatInput = Annotated[ExtractFormat, BeforeValidator(_normalize_format)]
CleanStr = Annotated[str, AfterValidator(_strip_angle_brackets)]

TicketStatus = Literal["open", "closed", "resolved", "pending", "spam"]
TicketUpdateStatus = Literal["open", "closed", "spam"]
TicketPriority = Literal["low", "normal", "high", "urgent"]
TicketOrderField = Literal["created_datetime", "updated_datetime", "last_message_datetime"]
CustomerOrderField = Literal["created_datetime", "updated_datetime", "email"]
OrderDirection = Literal["asc", "desc"]
SearchChannel = Literal["email", "chat", "phone", "sms", "api"]
EventObjectType = Literal["ticket", "customer", "user", "message"]
IntegrationType = Literal["email", "chat", "social", "ecommerce"]
CustomerChannelType = Literal["email", "phone", "sms"]


# ==================== REMOTE ENTITIES ====================


class Tag(BaseModel):
    """Ticket tag."""

    id: int | None = None
    name: str
    color: str | None = None
    description: str | None = None


class Channel(BaseModel):
    """Customer communication channel."""

    id: int | None = None
    type: str
    name: str | None = None
    address: str | None = None
    settings: dict[str, Any] | None = None


class Contact(BaseModel):
    """Sender or receiver of a message."""

    id: int | None = None
    name: str | None = None
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None


class User(BaseModel):
    """Gorgias agent."""

    id: int
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    name: str | None = None
    active: bool = True
    role: str | dict[str, Any] | None = None


class SatisfactionSurvey(BaseModel):
    """Satisfaction survey attached to a ticket."""

    score: float | None = None
    comment: str | None = None


class Customer(BaseModel):
    """Gorgias customer."""

    id: int
    external_id: str | None = None
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    name: str | None = None
    channels: list[Channel] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)
    language: str | None = None
    timezone: str | None = None
    created_datetime: datetime | None = None
    updated_datetime: datetime | None = None

    @field_validator("channels", "meta", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return [] if info.field_name == "channels" else {}
        return v

    @property
    def full_name(self) -> str:
        """First and last name joined, or the display name."""
        joined = f"{self.firstname or ''} {self.lastname or ''}".strip()
        return joined or (self.name or "")


class Ticket(BaseModel):
    """Gorgias ticket."""

    id: int
    external_id: str | None = None
    status: str
    channel: str | None = None
    via: str | None = None
    subject: str | None = None
    customer: Customer | None = None
    assignee_user: User | None = None
    tags: list[Tag] = Field(default_factory=list)
    priority: str | None = None
    created_datetime: datetime
    updated_datetime: datetime | None = None
    last_message_datetime: datetime | None = None
    messages_count: int = Field(default=0, ge=0)
    satisfaction_survey: SatisfactionSurvey | None = None
    meta: dict[str, Any] | None = None
    custom_fields: dict[str, Any] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_none(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("messages_count", mode="before")
    @classmethod
    def _messages_none(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def tag_names(self) -> list[str]:
        """Names of all tags on the ticket."""
        return [tag.name for tag in self.tags]

    @property
    def customer_email(self) -> str | None:
        """Email of the owning customer, if known."""
        return self.customer.email if self.customer else None


class Attachment(BaseModel):
    """Message attachment."""

    id: int | None = None
    name: str | None = None
    size: int | None = None
    content_type: str | None = None
    url: str | None = None
    public: bool | None = None


class Message(BaseModel):
    """Ticket message."""

    id: int
    ticket_id: int | None = None
    public: bool = True
    channel: str | None = None
    via: str | None = None
    from_agent: bool = False
    sender: Contact | None = None
    receiver: Contact | None = None
    subject: str | None = None
    body_text: str | None = None
    body_html: str | None = None
    stripped_text: str | None = None
    stripped_html: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    created_datetime: datetime | None = None
    updated_datetime: datetime | None = None
    sent_datetime: datetime | None = None
    message_id: str | None = None
    in_reply_to: str | None = None
    references: str | None = None

    @field_validator("attachments", mode="before")
    @classmethod
    def _attachments_none(cls, v: Any) -> Any:
        return [] if v is None else v


class Integration(BaseModel):
    """Gorgias integration (email, chat, e-commerce, ...)."""

    id: int
    name: str
    type: str
    enabled: bool = True
    settings: dict[str, Any] = Field(default_factory=dict)
    created_datetime: datetime | None = None
    updated_datetime: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_enabled(cls, data: Any) -> Any:
        # The API reports deactivation as a timestamp rather than a flag
        if isinstance(data, dict) and "enabled" not in data and "deactivated_datetime" in data:
            data = {**data, "enabled": data["deactivated_datetime"] is None}
        if isinstance(data, dict) and data.get("settings") is None and "settings" in data:
            data = {**data, "settings": {}}
        return data

    @property
    def email_address(self) -> str | None:
        """Address usable as a reply "from" address, if this is an email integration."""
        value = self.settings.get("email")
        return value if isinstance(value, str) else None


class Event(BaseModel):
    """Activity event on a ticket, customer, user or message."""

    id: int
    object_type: str
    object_id: int | None = None
    event_type: str = Field(validation_alias=AliasChoices("event_type", "type"))
    user_id: int | None = None
    user: User | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    created_datetime: datetime | None = None

    @field_validator("data", mode="before")
    @classmethod
    def _data_none(cls, v: Any) -> Any:
        return {} if v is None else v


class CustomerDetails(Customer):
    """Customer with optional integration data."""

    integrations: list[Integration] | None = None


class PageMeta(BaseModel):
    """Pagination metadata returned with list endpoints."""

    total_resources: int | None = None
    total_count: int | None = None
    prev_cursor: str | None = None
    next_cursor: str | None = None

    @property
    def total(self) -> int | None:
        """Total result count when the API reports one."""
        return self.total_resources if self.total_resources is not None else self.total_count


class Page(BaseModel, Generic[T]):
    """One page of results plus the continuation cursor."""

    data: list[T] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)

    @field_validator("meta", mode="before")
    @classmethod
    def _meta_none(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def next_cursor(self) -> str | None:
        """Cursor for the next page, None at the end."""
        return self.meta.next_cursor


class CustomerEmailData(BaseModel):
    """Per-customer rollup produced by email extraction."""

    customer_id: int
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    ticket_count: int = 0
    last_ticket_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    status: str = "unknown"
    satisfaction_score: float | None = None
    total_messages: int = 0
    channels: list[str] = Field(default_factory=list)


# ==================== TOOL REQUESTS ====================


class ListTicketsParams(StrictBaseModel):
    """List tickets request parameters."""

    customer_id: int | None = Field(None, gt=0, description="Filter by specific customer ID")
    status: TicketStatus | None = Field(None, description="Filter by ticket status")
    channel: CleanStr | None = Field(None, max_length=50, description="Filter by channel (email, chat, etc.)")
    tags: list[CleanStr] | None = Field(None, description="Filter by tag names (all must match)")
    limit: int = Field(default=50, ge=1, le=100, description="Number of results to return (1-100)")
    cursor: str | None = Field(None, description="Pagination cursor for next page")
    order_by: TicketOrderField | None = Field(None, description="Sort field")
    order_direction: OrderDirection = Field(default="desc", description="Sort direction")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class GetTicketParams(StrictBaseModel):
    """Get ticket request parameters."""

    ticket_id: int = Field(gt=0, description="The ID of the ticket to retrieve")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class ListTicketMessagesParams(StrictBaseModel):
    """List ticket messages request parameters."""

    ticket_id: int = Field(gt=0, description="The ID of the ticket to get messages for")
    limit: int = Field(default=50, ge=1, le=100, description="Number of messages to retrieve (1-100)")
    cursor: str | None = Field(None, description="Pagination cursor for next page")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class ListCustomersParams(StrictBaseModel):
    """List customers request parameters."""

    email: CleanStr | None = Field(None, max_length=320, description="Filter by specific email address")
    external_id: CleanStr | None = Field(None, max_length=255, description="Filter by external ID")
    limit: int = Field(default=50, ge=1, le=100, description="Number of results to return (1-100)")
    cursor: str | None = Field(None, description="Pagination cursor for next page")
    order_by: CustomerOrderField = Field(default="created_datetime", description="Sort field")
    order_direction: OrderDirection = Field(default="desc", description="Sort direction")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class ExtractCustomerEmailsParams(StrictBaseModel):
    """Customer email extraction request parameters."""

    date_from: date | None = Field(None, description="Start date filter, inclusive (YYYY-MM-DD)")
    date_to: date | None = Field(None, description="End date filter, inclusive (YYYY-MM-DD)")
    status_filter: list[TicketStatus] | None = Field(None, description="Only count tickets with these statuses")
    include_tags: bool = Field(default=False, description="Include tag information in the output")
    include_satisfaction: bool = Field(default=False, description="Include customer satisfaction scores")
    format: ExtractFormatInput = Field(default=ExtractFormat.JSON, description="Output format: json, csv or table")
    limit: int = Field(default=100, ge=1, le=1000, description="Maximum number of customers to extract (1-1000)")

    @field_validator("date_to")
    @classmethod
    def validate_date_range(cls, v: date | None, info: ValidationInfo) -> date | None:
        """Validate that date_to is not before date_from."""
        start = info.data.get("date_from")
        if v is not None and start is not None and v < start:
            raise ValueError("date_to must be greater than or equal to date_from")
        return v


class SendReplyParams(StrictBaseModel):
    """Send reply request parameters."""

    ticket_id: int = Field(gt=0, description="Target ticket ID to reply to")
    message_type: MessageType = Field(
        description="outgoing (agent to customer), internal-note (agent to agent), incoming (simulate customer)"
    )
    body_text: str = Field(min_length=1, max_length=100000, description="Plain text message content")
    body_html: str | None = Field(None, max_length=200000, description="HTML content (defaults to body_text)")
    sender_email: str = Field(max_length=320, description="Email of the sender")
    receiver_email: str | None = Field(None, max_length=320, description="Customer email (required for outgoing)")
    subject: CleanStr | None = Field(None, max_length=998, description="Message subject")
    source_from_address: str | None = Field(
        None, max_length=320, description="Source email address (must be an existing email integration)"
    )


class TagInput(StrictBaseModel):
    """Tag reference used when setting ticket tags."""

    name: CleanStr = Field(min_length=1, max_length=100, description="Tag name")


class UpdateTicketParams(StrictBaseModel):
    """Update ticket request parameters.

    Only fields explicitly provided are sent. An explicit null
    ``assignee_user_id`` unassigns the ticket; other nulls are ignored.
    """

    ticket_id: int = Field(gt=0, description="Ticket ID to update")
    status: TicketUpdateStatus | None = Field(None, description="New ticket status")
    assignee_user_id: int | None = Field(None, gt=0, description="User ID to assign (null to unassign)")
    tags: list[TagInput] | None = Field(None, description="Tags to set on the ticket (replaces existing tags)")
    priority: TicketPriority | None = Field(None, description="Ticket priority level")
    subject: CleanStr | None = Field(None, max_length=998, description="New ticket subject")
    meta: dict[str, Any] | None = Field(None, description="Custom metadata object")


class GetCustomerParams(StrictBaseModel):
    """Get customer request parameters."""

    customer_id: int = Field(gt=0, description="Customer ID to retrieve")
    include_channels: bool = Field(default=True, description="Include communication channels")
    include_integrations: bool = Field(default=True, description="Include integration data")
    include_meta: bool = Field(default=True, description="Include custom metadata fields")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class CustomerChannelInput(StrictBaseModel):
    """Channel supplied when creating a customer."""

    type: CustomerChannelType = Field(description="Channel type")
    address: str = Field(min_length=1, max_length=320, description="Channel address")


class CreateCustomerParams(StrictBaseModel):
    """Create customer request parameters."""

    email: str = Field(max_length=320, description="Customer email address (must be unique)")
    firstname: CleanStr | None = Field(None, max_length=255, description="Customer first name")
    lastname: CleanStr | None = Field(None, max_length=255, description="Customer last name")
    external_id: CleanStr | None = Field(None, max_length=255, description="External system ID")
    channels: list[CustomerChannelInput] | None = Field(None, description="Communication channels")
    meta: dict[str, Any] | None = Field(None, description="Custom metadata")


class ListEventsParams(StrictBaseModel):
    """List events request parameters."""

    object_type: EventObjectType | None = Field(None, description="Filter events by object type")
    object_id: int | None = Field(None, gt=0, description="Filter events for a specific object ID")
    event_type: CleanStr | None = Field(None, max_length=100, description="Filter by event type")
    user_id: int | None = Field(None, gt=0, description="Filter by user who performed the action")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum number of events (1-100)")
    cursor: str | None = Field(None, description="Pagination cursor for next page")
    order_by: str = Field(default="created_datetime:desc", max_length=100, description="Sort order")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class SearchTicketsParams(StrictBaseModel):
    """Search tickets request parameters."""

    query: CleanStr = Field(min_length=1, max_length=500, description="Text to find in subject or customer data")
    channel: SearchChannel | None = Field(None, description="Filter by communication channel")
    status: TicketUpdateStatus | None = Field(None, description="Filter by ticket status")
    assignee_user_id: int | None = Field(None, gt=0, description="Filter by assigned user ID")
    customer_email: CleanStr | None = Field(None, max_length=320, description="Filter by customer email")
    tags: list[CleanStr] | None = Field(None, description="Filter by tag names")
    date_from: datetime | None = Field(None, description="Tickets created after this date-time")
    date_to: datetime | None = Field(None, description="Tickets created before this date-time")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum results (1-100)")
    cursor: str | None = Field(None, description="Pagination cursor")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class GetIntegrationsParams(StrictBaseModel):
    """List integrations request parameters."""

    type: IntegrationType | None = Field(None, description="Filter integrations by type")
    active_only: bool = Field(default=True, description="Only return enabled integrations")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum integrations to return")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )
