"""Gorgias MCP Server implementation."""

import asyncio
import csv
import io
import json
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from .client import GorgiasClient
from .config import load_config
from .errors import ErrorCode, GorgiasError
from .extraction import extract_customer_emails
from .models import (
    CreateCustomerParams,
    Customer,
    CustomerDetails,
    CustomerEmailData,
    Event,
    ExtractCustomerEmailsParams,
    ExtractFormat,
    GetCustomerParams,
    GetIntegrationsParams,
    GetTicketParams,
    Integration,
    ListCustomersParams,
    ListEventsParams,
    ListTicketMessagesParams,
    ListTicketsParams,
    Message,
    Page,
    ResponseFormat,
    SearchTicketsParams,
    SendReplyParams,
    Ticket,
    UpdateTicketParams,
)

# Configure logging
logger = logging.getLogger(__name__)

# Constants
CHARACTER_LIMIT = 25000  # Maximum response size per MCP best practices
MESSAGE_BODY_TRUNCATE_LENGTH = 500  # Maximum length for message body in markdown formatting
RESOURCE_MESSAGE_LIMIT = 20
TRANSPORTS = ("stdio", "sse", "streamable-http")

T = TypeVar("T")


async def _run_client_call(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking client call in a worker thread.

    Rate limit waits and retry backoff then suspend only the calling tool,
    never the event loop.
    """
    return await asyncio.to_thread(func, *args, **kwargs)


# Tool annotation constants
def _read_only_annotations(title: str) -> ToolAnnotations:
    """Create read-only tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
        title=title,
    )


def _write_annotations(title: str) -> ToolAnnotations:
    """Create write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
        title=title,
    )


def _idempotent_write_annotations(title: str) -> ToolAnnotations:
    """Create idempotent write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
        title=title,
    )


def _serialize_json(obj: dict[str, Any], *, use_compact: bool) -> str:
    """Serialize JSON object with appropriate formatting.

    Args:
        obj: Dictionary to serialize
        use_compact: If True, use compact format; otherwise use indented format

    Returns:
        JSON string
    """
    if use_compact:
        return json.dumps(obj, separators=(",", ":"), default=str)
    return json.dumps(obj, indent=2, default=str)


def _find_max_items_for_limit(obj: dict[str, Any], original_items: list[Any], limit: int, *, use_compact: bool) -> int:
    """Binary search for the largest prefix of items that fits under limit."""
    left, right = 0, len(original_items)
    while left < right:
        mid = (left + right + 1) // 2
        obj["items"] = original_items[:mid]
        if len(_serialize_json(obj, use_compact=use_compact)) <= limit:
            left = mid
        else:
            right = mid - 1
    return left


def _truncate_json_response(content: str, obj: dict[str, Any], limit: int) -> str:
    """Truncate JSON response preserving validity.

    Args:
        content: Original content string
        obj: Parsed JSON object
        limit: Character limit

    Returns:
        Truncated JSON string
    """
    original_size = len(content)
    use_compact = original_size > limit * 1.2

    if "items" in obj and isinstance(obj["items"], list):
        original_items = obj["items"]
        max_items = _find_max_items_for_limit(obj, original_items, limit, use_compact=use_compact)
        obj["items"] = original_items[:max_items]

    meta = obj.setdefault("_meta", {})
    meta.update(
        {
            "truncated": True,
            "original_size": original_size,
            "limit": limit,
            "note": "Response truncated; lower limit, follow next_cursor or add filters.",
        }
    )

    # Ensure final JSON (including metadata) fits under limit
    if "items" in obj and isinstance(obj["items"], list):
        json_str = _serialize_json(obj, use_compact=use_compact)
        while obj["items"] and len(json_str) > limit:
            obj["items"].pop()
            json_str = _serialize_json(obj, use_compact=use_compact)

    return _serialize_json(obj, use_compact=use_compact)


def _truncate_text_response(content: str, limit: int) -> str:
    """Truncate plaintext/markdown response with warning."""
    truncated = content[:limit]
    truncated += "\n\n⚠️ **Response Truncated**\n"
    truncated += f"Response size ({len(content)} chars) exceeds limit ({limit} chars).\n"
    truncated += "Use a lower limit, follow the pagination cursor or add filters to see more results."
    return truncated


def truncate_response(content: str, limit: int = CHARACTER_LIMIT) -> str:
    """Truncate response with helpful message if over limit.

    JSON objects keep their validity: the "items" array is shrunk and a
    "_meta" block records the truncation. Anything else gets a warning
    appended.

    Args:
        content: The content to potentially truncate
        limit: Maximum character limit (default: CHARACTER_LIMIT)

    Returns:
        Original content if under limit, truncated content otherwise
    """
    if len(content) <= limit:
        return content

    if content.lstrip().startswith("{"):
        try:
            obj = json.loads(content)
            if isinstance(obj, dict):
                return _truncate_json_response(content, obj, limit)
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug("Failed to parse/truncate JSON response: %s", e, exc_info=True)

    return _truncate_text_response(content, limit)


def _format_page_json(page: Page[Any], limit: int) -> str:
    """Format a page of entities as JSON with cursor metadata.

    Args:
        page: Page returned by the client
        limit: Page size that was requested

    Returns:
        JSON-formatted string
    """
    next_cursor = page.next_cursor
    response: dict[str, Any] = {
        "items": [item.model_dump(mode="json") for item in page.data],
        "total": page.meta.total,  # None when the API does not report it
        "count": len(page.data),
        "limit": limit,
        "has_more": next_cursor is not None,
        "next_cursor": next_cursor,
        "prev_cursor": page.meta.prev_cursor,
        "_meta": {},  # Pre-allocated for truncation flags
    }
    return json.dumps(response, indent=2, default=str)


def _format_model_json(model: BaseModel) -> str:
    return json.dumps(model.model_dump(mode="json"), indent=2, default=str)


def _pagination_line(page: Page[Any]) -> str:
    if page.next_cursor:
        return f"More results available. Next cursor: `{page.next_cursor}`"
    return "End of results."


def _format_tickets_markdown(page: Page[Ticket], query_info: str = "All tickets") -> str:
    """Format tickets as markdown for human readability.

    Args:
        page: Page of tickets to format
        query_info: Description of the query/filters

    Returns:
        Markdown-formatted string
    """
    total = page.meta.total
    lines = [f"# Tickets: {query_info}", ""]
    lines.append(f"Found {len(page.data)} ticket(s)" + (f" (total: {total})" if total is not None else ""))
    lines.append("")

    for ticket in page.data:
        lines.append(f"## Ticket {ticket.id} - {ticket.subject or '(no subject)'}")
        lines.append(f"- **Status**: {ticket.status}")
        lines.append(f"- **Channel**: {ticket.channel or 'N/A'}")
        lines.append(f"- **Customer**: {ticket.customer_email or 'N/A'}")
        if ticket.priority:
            lines.append(f"- **Priority**: {ticket.priority}")
        if ticket.tags:
            lines.append(f"- **Tags**: {', '.join(ticket.tag_names)}")
        # Use isoformat() to include timezone information if available
        lines.append(f"- **Created**: {ticket.created_datetime.isoformat()}")
        lines.append("")

    lines.append(_pagination_line(page))
    return "\n".join(lines)


def _format_ticket_detail_markdown(ticket: Ticket) -> str:
    """Format single ticket with full details as markdown."""
    assignee = ticket.assignee_user
    lines = [f"# Ticket {ticket.id} - {ticket.subject or '(no subject)'}", ""]
    lines.append(f"**Status**: {ticket.status}")
    lines.append(f"**Priority**: {ticket.priority or 'N/A'}")
    lines.append(f"**Channel**: {ticket.channel or 'N/A'}")
    lines.append(f"**Via**: {ticket.via or 'N/A'}")
    lines.append(f"**Customer**: {ticket.customer_email or 'N/A'}")
    lines.append(f"**Assignee**: {(assignee.email or assignee.id) if assignee else 'Unassigned'}")
    lines.append(f"**Messages**: {ticket.messages_count}")
    lines.append(f"**Created**: {ticket.created_datetime.isoformat()}")
    if ticket.updated_datetime:
        lines.append(f"**Updated**: {ticket.updated_datetime.isoformat()}")
    if ticket.last_message_datetime:
        lines.append(f"**Last Message**: {ticket.last_message_datetime.isoformat()}")
    lines.append("")

    if ticket.tags:
        lines.append(f"**Tags**: {', '.join(ticket.tag_names)}")
        lines.append("")

    survey = ticket.satisfaction_survey
    if survey and survey.score is not None:
        lines.append(f"**Satisfaction**: {survey.score}" + (f" - {survey.comment}" if survey.comment else ""))
        lines.append("")

    return "\n".join(lines)


def _format_messages_markdown(ticket_id: int, page: Page[Message]) -> str:
    """Format ticket messages as markdown, oldest first as returned."""
    lines = [f"# Messages for Ticket {ticket_id}", ""]
    lines.append(f"Found {len(page.data)} message(s)")
    lines.append("")

    for message in page.data:
        sender = message.sender.email if message.sender and message.sender.email else "Unknown"
        kind = "Agent" if message.from_agent else "Customer"
        if message.channel == "internal-note":
            kind = "Internal note"
        created = message.created_datetime.isoformat() if message.created_datetime else "Unknown"
        lines.append(f"## Message {message.id} ({kind})")
        lines.append(f"- **From**: {sender}")
        lines.append(f"- **Channel**: {message.channel or 'N/A'}")
        lines.append(f"- **Created**: {created}")
        if message.subject:
            lines.append(f"- **Subject**: {message.subject}")
        if message.attachments:
            lines.append(f"- **Attachments**: {', '.join(a.name or 'unnamed' for a in message.attachments)}")
        lines.append("")

        body = message.stripped_text or message.body_text or ""
        # Truncate very long bodies
        if len(body) > MESSAGE_BODY_TRUNCATE_LENGTH:
            body = body[:MESSAGE_BODY_TRUNCATE_LENGTH] + "...\n(truncated)"
        lines.append(body)
        lines.append("")

    lines.append(_pagination_line(page))
    return "\n".join(lines)


def _format_customers_markdown(page: Page[Customer]) -> str:
    """Format customers as markdown for human readability."""
    total = page.meta.total
    lines = ["# Customers", ""]
    lines.append(f"Found {len(page.data)} customer(s) (total: {total if total is not None else 'unknown'})")
    lines.append("")

    for customer in page.data:
        lines.append(f"## {customer.full_name or 'N/A'}")
        lines.append(f"- **ID**: {customer.id}")
        lines.append(f"- **Email**: {customer.email or 'N/A'}")
        if customer.external_id:
            lines.append(f"- **External ID**: {customer.external_id}")
        if customer.created_datetime:
            lines.append(f"- **Created**: {customer.created_datetime.isoformat()}")
        lines.append("")

    lines.append(_pagination_line(page))
    return "\n".join(lines)


def _format_customer_detail_markdown(customer: CustomerDetails) -> str:
    """Format a customer with channels, metadata and integrations as markdown."""
    lines = [f"# Customer: {customer.full_name or 'N/A'}", ""]
    lines.append(f"**ID**: {customer.id}")
    lines.append(f"**Email**: {customer.email or 'N/A'}")
    lines.append(f"**External ID**: {customer.external_id or 'N/A'}")
    if customer.language:
        lines.append(f"**Language**: {customer.language}")
    if customer.timezone:
        lines.append(f"**Timezone**: {customer.timezone}")
    if customer.created_datetime:
        lines.append(f"**Created**: {customer.created_datetime.isoformat()}")
    lines.append("")

    if customer.channels:
        lines.append("## Channels")
        lines.extend(f"- {channel.type}: {channel.address or 'N/A'}" for channel in customer.channels)
        lines.append("")

    if customer.meta:
        lines.append("## Metadata")
        lines.extend(f"- **{key}**: {value}" for key, value in customer.meta.items())
        lines.append("")

    if customer.integrations:
        lines.append("## Integrations")
        lines.extend(
            f"- {integration.name} ({integration.type}) - {'enabled' if integration.enabled else 'disabled'}"
            for integration in customer.integrations
        )
        lines.append("")

    return "\n".join(lines)


def _format_events_markdown(page: Page[Event]) -> str:
    """Format events as markdown."""
    lines = ["# Events", ""]
    lines.append(f"Found {len(page.data)} event(s)")
    lines.append("")

    for event in page.data:
        created = event.created_datetime.isoformat() if event.created_datetime else "Unknown"
        target = f"{event.object_type} {event.object_id}" if event.object_id else event.object_type
        user = event.user.email if event.user and event.user.email else (event.user_id or "system")
        lines.append(f"- **{created}** `{event.event_type}` on {target} by {user}")

    lines.append("")
    lines.append(_pagination_line(page))
    return "\n".join(lines)


def _format_integrations_markdown(integrations: list[Integration]) -> str:
    """Format integrations as markdown."""
    lines = ["# Integrations", ""]
    lines.append(f"Found {len(integrations)} integration(s)")
    lines.append("")

    for integration in integrations:
        lines.append(f"## {integration.name}")
        lines.append(f"- **ID**: {integration.id}")
        lines.append(f"- **Type**: {integration.type}")
        lines.append(f"- **Status**: {'enabled' if integration.enabled else 'disabled'}")
        if integration.email_address:
            lines.append(f"- **Address**: {integration.email_address}")
        lines.append("")

    return "\n".join(lines)


def _format_extraction_csv(records: list[CustomerEmailData], include_tags: bool, include_satisfaction: bool) -> str:
    """Format extraction records as CSV with every cell quoted."""
    headers = [
        "Customer ID",
        "Email",
        "First Name",
        "Last Name",
        "Ticket Count",
        "Last Ticket Date",
        "Status",
        "Total Messages",
        "Channels",
    ]
    if include_tags:
        headers.append("Tags")
    if include_satisfaction:
        headers.append("Satisfaction Score")

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for record in records:
        row = [
            record.customer_id,
            record.email or "",
            record.firstname or "",
            record.lastname or "",
            record.ticket_count,
            record.last_ticket_date.isoformat() if record.last_ticket_date else "",
            record.status,
            record.total_messages,
            ";".join(record.channels),
        ]
        if include_tags:
            row.append(";".join(record.tags))
        if include_satisfaction:
            row.append("" if record.satisfaction_score is None else record.satisfaction_score)
        writer.writerow(row)
    return buffer.getvalue().rstrip("\n")


def _format_extraction_table(records: list[CustomerEmailData]) -> str:
    """Format extraction records as a fixed-width text table."""
    if not records:
        return "No customer data found."

    headers = ["ID", "Email", "Name", "Tickets", "Last Ticket", "Status"]
    rows = [
        [
            str(record.customer_id),
            record.email or "N/A",
            f"{record.firstname or ''} {record.lastname or ''}".strip() or "N/A",
            str(record.ticket_count),
            record.last_ticket_date.date().isoformat() if record.last_ticket_date else "N/A",
            record.status,
        ]
        for record in records
    ]
    widths = [max(len(header), *(len(row[i]) for row in rows)) for i, header in enumerate(headers)]

    lines = [" | ".join(header.ljust(widths[i]) for i, header in enumerate(headers))]
    lines.append(" | ".join("-" * width for width in widths))
    lines.extend(" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows)
    return "\n".join(lines)


def _format_extraction(records: list[CustomerEmailData], params: ExtractCustomerEmailsParams) -> str:
    if params.format == ExtractFormat.CSV:
        output = _format_extraction_csv(records, params.include_tags, params.include_satisfaction)
    elif params.format == ExtractFormat.TABLE:
        output = _format_extraction_table(records)
    else:
        output = json.dumps([record.model_dump(mode="json") for record in records], indent=2)

    summary = f"Successfully extracted {len(records)} customer email records"
    return f"{summary}\n\nCustomer Email Data ({params.format.value.upper()} format):\n\n{output}"


def _handle_api_error(e: Exception, context: str = "operation") -> str:
    """Format errors with actionable guidance for LLM agents.

    Args:
        e: The exception that occurred
        context: Description of what was being attempted

    Returns:
        Formatted error message with guidance
    """
    if isinstance(e, GorgiasError):
        if e.code == ErrorCode.RESOURCE_NOT_FOUND:
            return f"Error: Resource not found during {context}. Please verify the ID is correct and you have access."
        if e.code == ErrorCode.FORBIDDEN:
            return f"Error: Permission denied for {context}. Your credentials lack access to this resource."
        if e.code == ErrorCode.UNAUTHORIZED:
            return f"Error: Authentication failed for {context}. Check GORGIAS_USERNAME and GORGIAS_API_KEY."
        if e.code == ErrorCode.RATE_LIMIT_EXCEEDED:
            return f"Error: Rate limit exceeded during {context}. Wait a few seconds and try again."
        if e.code == ErrorCode.NETWORK_ERROR:
            return f"Error: Network issue during {context}. Check GORGIAS_DOMAIN and that Gorgias is reachable ({e})."

    # Generic error with type information
    return f"Error during {context}: {type(e).__name__} - {e}"


def _ticket_query_info(params: ListTicketsParams | SearchTicketsParams) -> str:
    shown = params.model_dump(exclude={"response_format", "limit", "cursor", "order_direction"})
    filters = {k: v for k, v in shown.items() if v}
    return ", ".join(f"{k}='{v}'" for k, v in filters.items()) or "All tickets"


class GorgiasMCPServer:
    """Gorgias MCP Server with proper client lifecycle management."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        """Initialize the server.

        Args:
            host: Host to bind for HTTP transport (default: 127.0.0.1)
            port: Port to bind for HTTP transport (default: 8000)
        """
        self.client: GorgiasClient | None = None
        # Create FastMCP with lifespan configured
        self.mcp = FastMCP("gorgias_mcp", host=host, port=port, lifespan=self._create_lifespan())
        self._setup_tools()
        self._setup_resources()
        self._setup_prompts()

    def _create_lifespan(self) -> Any:
        """Create the lifespan context manager for the server."""

        @asynccontextmanager
        async def lifespan(_app: FastMCP) -> AsyncIterator[None]:
            """Initialize resources on startup and cleanup on shutdown."""
            await self.initialize()
            try:
                yield
            finally:
                if self.client is not None:
                    self.client.session.close()
                    self.client = None
                    logger.info("Gorgias client cleaned up")

        return lifespan

    def get_client(self) -> GorgiasClient:
        """Get the Gorgias client, ensuring it's initialized."""
        if not self.client:
            raise RuntimeError("Gorgias client not initialized")
        return self.client

    async def initialize(self) -> None:
        """Initialize the Gorgias client on server startup."""
        # Load environment variables from .env files, working directory first
        cwd_env = Path.cwd() / ".env"
        if cwd_env.exists():
            load_dotenv(cwd_env)
            logger.info("Loaded environment from %s", cwd_env)

        # Also support loading from parent directories (for when running from subdirs)
        load_dotenv()

        try:
            config = load_config()
            self.client = GorgiasClient(config)
            logger.info("Gorgias client initialized for %s", config.base_url)

            if not await _run_client_call(self.client.test_connection):
                raise RuntimeError("Failed to connect to Gorgias API")
        except Exception:
            logger.exception("Failed to initialize Gorgias client")
            raise

    def _setup_tools(self) -> None:
        """Register all tools with the MCP server."""
        self._setup_ticket_tools()
        self._setup_customer_tools()
        self._setup_activity_tools()

    def _setup_ticket_tools(self) -> None:  # noqa: PLR0915
        """Register ticket-related tools."""

        @self.mcp.tool(annotations=_read_only_annotations("List Tickets"))
        async def gorgias_list_tickets(params: ListTicketsParams) -> str:
            """List tickets with filtering and cursor pagination.

            Args:
                params (ListTicketsParams): Validated parameters containing:
                    - customer_id (int | None): Only tickets of this customer
                    - status (str | None): open, closed, resolved, pending or spam
                    - channel (str | None): email, chat, etc.
                    - tags (list[str] | None): Tickets must carry all of these tags
                    - limit (int): Results per page, 1-100 (default: 50)
                    - cursor (str | None): Cursor from a previous response
                    - order_by (str | None): created_datetime, updated_datetime or last_message_datetime
                    - order_direction (str): asc or desc (default: desc)
                    - response_format (ResponseFormat): Output format (default: "markdown")

            Returns:
                str: Markdown list of tickets, or JSON with "items", "count",
                "has_more" and "next_cursor".

            Examples:
                - Use when: "Show open tickets" -> status="open"
                - Use when: "Tickets for customer 42" -> customer_id=42
                - Don't use when: Searching by text (use gorgias_search_tickets)

            Note:
                Status, channel and tag filters apply to the returned page, so a
                page may hold fewer than limit tickets while more remain.
            """
            client = self.get_client()
            page = await _run_client_call(client.list_tickets, **params.model_dump(exclude={"response_format"}))

            if params.response_format == ResponseFormat.JSON:
                result = _format_page_json(page, params.limit)
            else:
                result = _format_tickets_markdown(page, _ticket_query_info(params))

            return truncate_response(result)

        @self.mcp.tool(annotations=_read_only_annotations("Get Ticket Details"))
        async def gorgias_get_ticket(params: GetTicketParams) -> str:
            """Get detailed information about a specific ticket by ID.

            Parameters:
                ticket_id (int): Ticket ID (required)
                response_format (ResponseFormat): "markdown" or "json" (default: "markdown")

            Returns:
                str: Ticket details with status, channel, customer, assignee,
                tags and satisfaction survey.

            Error Handling:
                - Raises RESOURCE_NOT_FOUND if the ticket does not exist
            """
            client = self.get_client()
            ticket = await _run_client_call(client.get_ticket, params.ticket_id)

            if params.response_format == ResponseFormat.JSON:
                result = _format_model_json(ticket)
            else:
                result = _format_ticket_detail_markdown(ticket)

            return truncate_response(result)

        @self.mcp.tool(annotations=_read_only_annotations("List Ticket Messages"))
        async def gorgias_list_ticket_messages(params: ListTicketMessagesParams) -> str:
            """List the messages (conversation) of a ticket.

            Args:
                params (ListTicketMessagesParams): ticket_id, limit (1-100,
                    default 50), cursor, response_format

            Returns:
                str: Messages with sender, channel, timestamps and body
                (markdown bodies are cut at 500 characters).
            """
            client = self.get_client()
            page = await _run_client_call(
                client.list_ticket_messages, params.ticket_id, limit=params.limit, cursor=params.cursor
            )

            if params.response_format == ResponseFormat.JSON:
                result = _format_page_json(page, params.limit)
            else:
                result = _format_messages_markdown(params.ticket_id, page)

            return truncate_response(result)

        @self.mcp.tool(annotations=_write_annotations("Send Ticket Reply"))
        async def gorgias_send_reply(params: SendReplyParams) -> Message:
            """Send a reply, internal note or simulated customer message on a ticket.

            Args:
                params (SendReplyParams): Validated parameters containing:
                    - ticket_id (int): Ticket to reply to (required)
                    - message_type (str): "outgoing", "internal-note" or "incoming"
                    - body_text (str): Plain text content (required)
                    - body_html (str | None): HTML content (defaults to body_text)
                    - sender_email (str): Sender address (required)
                    - receiver_email (str | None): Customer address, required for outgoing
                    - subject (str | None): Message subject
                    - source_from_address (str | None): Support address to send from

            Returns:
                Message: The created message.

            Examples:
                - Use when: "Reply to the customer on ticket 12" -> message_type="outgoing"
                - Use when: "Leave a note for the team" -> message_type="internal-note"

            Error Handling:
                - Raises VALIDATION_ERROR when an outgoing message has no receiver_email
                  or an address is malformed; nothing is sent in that case
            """
            client = self.get_client()
            return await _run_client_call(client.send_reply, **params.model_dump(exclude_none=True))

        @self.mcp.tool(annotations=_idempotent_write_annotations("Update Ticket"))
        async def gorgias_update_ticket(params: UpdateTicketParams) -> Ticket:
            """Update status, assignee, tags, priority, subject or metadata of a ticket.

            Args:
                params (UpdateTicketParams): ticket_id (required) plus any of
                    status, assignee_user_id, tags, priority, subject, meta

            Returns:
                Ticket: The updated ticket.

            Note:
                Only the fields you pass are changed. Pass assignee_user_id=null
                to unassign. Tags replace the ticket's existing tags.
            """
            client = self.get_client()
            changes = params.model_dump(include=params.model_fields_set - {"ticket_id"})
            return await _run_client_call(client.update_ticket, params.ticket_id, **changes)

        @self.mcp.tool(annotations=_read_only_annotations("Search Tickets"))
        async def gorgias_search_tickets(params: SearchTicketsParams) -> str:
            """Search tickets by text with optional filters.

            Args:
                params (SearchTicketsParams): Validated parameters containing:
                    - query (str): Text to search for (required)
                    - channel, status, assignee_user_id, customer_email, tags (optional filters)
                    - date_from, date_to (datetime | None): Creation date bounds
                    - limit (int): 1-100 (default: 50)
                    - cursor (str | None): Pagination cursor
                    - response_format (ResponseFormat): Output format (default: "markdown")

            Returns:
                str: Matching tickets.

            Note:
                When the search endpoint is unavailable the query is matched
                against subject and customer email of a ticket listing instead.
            """
            client = self.get_client()
            search_args = params.model_dump(exclude={"response_format"}, exclude_none=True)
            page = await _run_client_call(client.search_tickets, **search_args)

            if params.response_format == ResponseFormat.JSON:
                result = _format_page_json(page, params.limit)
            else:
                result = _format_tickets_markdown(page, _ticket_query_info(params))

            return truncate_response(result)

    def _setup_customer_tools(self) -> None:
        """Register customer-related tools."""

        @self.mcp.tool(annotations=_read_only_annotations("List Customers"))
        async def gorgias_list_customers(params: ListCustomersParams) -> str:
            """List customers with optional email or external ID filter.

            Args:
                params (ListCustomersParams): email, external_id, limit (1-100,
                    default 50), cursor, order_by, order_direction, response_format

            Returns:
                str: Customers with ID, email, name and creation date.
            """
            client = self.get_client()
            page = await _run_client_call(client.list_customers, **params.model_dump(exclude={"response_format"}))

            if params.response_format == ResponseFormat.JSON:
                result = _format_page_json(page, params.limit)
            else:
                result = _format_customers_markdown(page)

            return truncate_response(result)

        @self.mcp.tool(annotations=_read_only_annotations("Get Customer Details"))
        async def gorgias_get_customer(params: GetCustomerParams) -> str:
            """Get a customer with channels, metadata and integrations.

            Args:
                params (GetCustomerParams): customer_id (required),
                    include_channels, include_integrations, include_meta
                    (all default True), response_format

            Returns:
                str: Customer profile.

            Note:
                Integrations are loaded best-effort and are omitted when
                they cannot be fetched.
            """
            client = self.get_client()
            detail_args = params.model_dump(exclude={"response_format"})
            customer = await _run_client_call(client.get_customer_details, **detail_args)

            if params.response_format == ResponseFormat.JSON:
                result = _format_model_json(customer)
            else:
                result = _format_customer_detail_markdown(customer)

            return truncate_response(result)

        @self.mcp.tool(annotations=_write_annotations("Create Customer"))
        async def gorgias_create_customer(params: CreateCustomerParams) -> Customer:
            """Create a customer profile.

            Args:
                params (CreateCustomerParams): email (required, unique),
                    firstname, lastname, external_id, channels, meta

            Returns:
                Customer: The created customer.

            Error Handling:
                - Raises VALIDATION_ERROR if the email is not local@domain.tld
            """
            client = self.get_client()
            return await _run_client_call(client.create_customer, **params.model_dump(exclude_none=True))

        @self.mcp.tool(annotations=_read_only_annotations("Extract Customer Emails"))
        async def gorgias_extract_customer_emails(params: ExtractCustomerEmailsParams) -> str:
            """Extract per-customer email and ticket statistics for spreadsheets.

            Args:
                params (ExtractCustomerEmailsParams): Validated parameters containing:
                    - date_from, date_to (YYYY-MM-DD | None): Inclusive ticket creation range
                    - status_filter (list[str] | None): Only count tickets in these statuses
                    - include_tags (bool): Add the union of ticket tags (default: False)
                    - include_satisfaction (bool): Add the mean survey score (default: False)
                    - format (str): "json", "csv" or "table" (default: "json")
                    - limit (int): Maximum customers, 1-1000 (default: 100)

            Returns:
                str: A summary line followed by the records in the requested format.

            Note:
                Customers are processed newest first, one at a time, so large
                limits take a while. Customers whose tickets cannot be loaded
                are skipped.
            """
            client = self.get_client()
            extract_args = params.model_dump(exclude={"format"})
            records = await _run_client_call(extract_customer_emails, client, **extract_args)
            return truncate_response(_format_extraction(records, params))

    def _setup_activity_tools(self) -> None:
        """Register event and integration tools."""

        @self.mcp.tool(annotations=_read_only_annotations("List Events"))
        async def gorgias_list_events(params: ListEventsParams) -> str:
            """List account activity events.

            Args:
                params (ListEventsParams): object_type, object_id, event_type,
                    user_id, limit (1-100, default 50), cursor, order_by
                    (default "created_datetime:desc"), response_format

            Returns:
                str: Events with type, target object, actor and timestamp.

            Note:
                If the events feed is unavailable, recent ticket activity is
                returned as "ticket-activity" events instead.
            """
            client = self.get_client()
            page = await _run_client_call(client.list_events, **params.model_dump(exclude={"response_format"}))

            if params.response_format == ResponseFormat.JSON:
                result = _format_page_json(page, params.limit)
            else:
                result = _format_events_markdown(page)

            return truncate_response(result)

        @self.mcp.tool(annotations=_read_only_annotations("Get Integrations"))
        async def gorgias_get_integrations(params: GetIntegrationsParams) -> str:
            """List configured integrations (email, chat, social, ecommerce).

            Args:
                params (GetIntegrationsParams): type, active_only (default True),
                    limit, response_format

            Returns:
                str: Integrations with type, status and address.
            """
            client = self.get_client()
            page = await _run_client_call(
                client.get_integrations, type=params.type, active_only=params.active_only, limit=params.limit
            )

            if params.response_format == ResponseFormat.JSON:
                result = _format_page_json(page, params.limit)
            else:
                result = _format_integrations_markdown(page.data)

            return truncate_response(result)

    def _setup_resources(self) -> None:
        """Register all resources with the MCP server."""

        @self.mcp.resource("gorgias://ticket/{ticket_id}")
        async def get_ticket_resource(ticket_id: str) -> str:
            """Get a ticket and its recent messages as a resource."""
            client = self.get_client()
            try:
                ticket = await _run_client_call(client.get_ticket, int(ticket_id))
                messages = await _run_client_call(client.list_ticket_messages, ticket.id, limit=RESOURCE_MESSAGE_LIMIT)

                lines = [
                    f"Ticket {ticket.id} - {ticket.subject or '(no subject)'}",
                    f"Status: {ticket.status}",
                    f"Channel: {ticket.channel or 'N/A'}",
                    f"Customer: {ticket.customer_email or 'N/A'}",
                    f"Created: {ticket.created_datetime.isoformat()}",
                    "",
                    "Messages:",
                    "",
                ]
                for message in messages.data:
                    sender = message.sender.email if message.sender and message.sender.email else "Unknown"
                    created = message.created_datetime.isoformat() if message.created_datetime else "Unknown"
                    body = message.stripped_text or message.body_text or ""
                    lines.extend([f"--- {created} by {sender} ---", body, ""])

                return truncate_response("\n".join(lines))
            except (GorgiasError, ValueError, ValidationError) as e:
                return _handle_api_error(e, context=f"retrieving ticket {ticket_id}")

        @self.mcp.resource("gorgias://customer/{customer_id}")
        async def get_customer_resource(customer_id: str) -> str:
            """Get a customer profile as a resource."""
            client = self.get_client()
            try:
                customer = await _run_client_call(
                    client.get_customer_details, int(customer_id), include_integrations=False
                )
                return truncate_response(_format_customer_detail_markdown(customer))
            except (GorgiasError, ValueError, ValidationError) as e:
                return _handle_api_error(e, context=f"retrieving customer {customer_id}")

    def _setup_prompts(self) -> None:
        """Register all prompts with the MCP server."""

        @self.mcp.prompt()
        def analyze_ticket(ticket_id: int) -> str:
            """Generate a prompt to analyze a ticket."""
            return f"""Please analyze ticket with ID {ticket_id} from Gorgias.
Use the gorgias_get_ticket tool for the ticket details and gorgias_list_ticket_messages for the conversation.

After retrieving the ticket, provide:
1. A summary of the issue
2. Current status and priority
3. Timeline of interactions
4. Suggested next steps or resolution

Use gorgias_get_customer if you need more context about the customer."""

        @self.mcp.prompt()
        def draft_reply(ticket_id: int, tone: str = "friendly") -> str:
            """Generate a prompt to draft a reply to a ticket."""
            return f"""Please help draft a {tone} reply to ticket with ID {ticket_id}.

First, use gorgias_list_ticket_messages to read the conversation. Then draft a reply that:
1. Acknowledges the customer's concern
2. Provides a clear solution or next steps
3. Maintains a {tone} tone throughout
4. Is concise and easy to understand

Once approved, send it with gorgias_send_reply (message_type="outgoing") or keep it as an internal note."""


# Create the server instance with host/port from environment
# This allows HTTP transport to bind to the configured address
_host = os.getenv("MCP_HOST", "127.0.0.1")
_port = int(os.getenv("MCP_PORT", "8000"))
server = GorgiasMCPServer(host=_host, port=_port)

# Export the MCP server instance
mcp = server.mcp


# Health check endpoint for HTTP transport
@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:  # noqa: ARG001
    """Health check endpoint for HTTP transport."""
    status: dict[str, Any] = {"status": "healthy", "transport": "http"}
    if server.client is not None:
        status["rate_limit"] = server.client.rate_limit_status()
    return JSONResponse(status)


def _configure_logging() -> None:
    """Configure logging from the LOG_LEVEL environment variable.

    LOG_LEVEL defaults to INFO; a truthy GORGIAS_DEBUG forces DEBUG. Records
    go to stderr so they never mix with the stdio transport.
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    if os.getenv("GORGIAS_DEBUG", "").lower() in {"1", "true", "yes", "on"}:
        log_level_str = "DEBUG"

    if log_level_str not in valid_levels:
        invalid_level = log_level_str  # Store before resetting
        log_level_str = "INFO"
        logger.warning(
            "Invalid LOG_LEVEL '%s', defaulting to INFO. Valid values: %s",
            invalid_level,
            ", ".join(sorted(valid_levels)),
        )

    log_level = getattr(logging, log_level_str)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Add handler if none exists
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root_logger.addHandler(handler)


def _transport() -> str:
    """Return the transport named by MCP_TRANSPORT (default: stdio).

    ``sse`` and ``streamable-http`` bind to MCP_HOST/MCP_PORT and serve
    ``/health``.
    """
    transport = os.getenv("MCP_TRANSPORT", "stdio").lower()
    if transport not in TRANSPORTS:
        logger.warning(
            "Invalid MCP_TRANSPORT '%s', defaulting to stdio. Valid values: %s",
            transport,
            ", ".join(TRANSPORTS),
        )
        return "stdio"
    return transport


def main() -> None:
    """Main entry point for the server."""
    _configure_logging()
    mcp.run(transport=_transport())  # type: ignore[arg-type]
