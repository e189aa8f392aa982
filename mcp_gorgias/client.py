"""Gorgias REST API client."""

import logging
import re
from collections.abc import Callable
from typing import Any, TypeVar

import requests  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from . import __version__
from .config import GorgiasConfig
from .errors import GorgiasError, InputValidationError, NetworkError, classify_http_error
from .models import (
    Customer,
    CustomerDetails,
    Event,
    Integration,
    Message,
    MessageType,
    Page,
    PageMeta,
    Ticket,
)
from .rate_limiter import RateLimiter
from .retry import RetryHandler

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Event type given to events synthesized from tickets
TICKET_ACTIVITY_EVENT = "ticket-activity"

# Primary endpoint failures that mean "not available here" rather than "temporarily down"
FALLBACK_STATUSES = frozenset({400, 403, 404, 405, 501})

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

RATE_LIMIT_HEADER = "x-gorgias-account-api-call-limit"
ERROR_DETAIL_MAX_LENGTH = 200


def _error_detail(response: requests.Response) -> str:
    """Extract a short human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value[:ERROR_DETAIL_MAX_LENGTH]
            if isinstance(value, dict) and isinstance(value.get("msg"), str):
                return value["msg"][:ERROR_DETAIL_MAX_LENGTH]
    text = (response.text or "").strip()
    return text[:ERROR_DETAIL_MAX_LENGTH] or (response.reason or f"HTTP {response.status_code}")


def _parse(model: type[ModelT], body: Any, label: str) -> ModelT:
    """Validate a decoded response body, raising NetworkError on an unexpected shape."""
    try:
        return model.model_validate(body)
    except ValidationError as e:
        # Only field locations are logged; values may hold customer data
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors()[:5])
        logger.error("Unexpected response shape from %s: %s", label, fields)
        raise NetworkError(f"Unexpected response from {label}: {e.error_count()} invalid field(s) ({fields})") from e


def _should_fall_back(error: GorgiasError) -> bool:
    return error.status_code in FALLBACK_STATUSES


def _validate_email(value: str | None, field: str) -> None:
    if not value or not EMAIL_PATTERN.match(value):
        raise InputValidationError(f"{field} must be a valid email address (local@domain.tld)")


def _ticket_event(ticket: Ticket) -> Event:
    assignee = ticket.assignee_user
    return Event(
        id=ticket.id,
        object_type="ticket",
        object_id=ticket.id,
        event_type=TICKET_ACTIVITY_EVENT,
        user_id=assignee.id if assignee else None,
        user=assignee,
        data={"status": ticket.status, "subject": ticket.subject, "channel": ticket.channel},
        created_datetime=ticket.updated_datetime or ticket.created_datetime,
    )


class GorgiasClient:
    """Client for the Gorgias REST API.

    Every request acquires a slot from the shared rate limiter and runs inside
    the retry envelope; failed exchanges are raised as ``GorgiasError``
    subclasses.
    """

    def __init__(
        self,
        config: GorgiasConfig,
        rate_limiter: RateLimiter | None = None,
        retry_handler: RetryHandler | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Connection settings
            rate_limiter: Shared limiter (default: built from config)
            retry_handler: Retry envelope (default: built from config)
            session: HTTP session (default: a new requests.Session)
        """
        self.base_url = config.base_url
        self.timeout = config.timeout
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit, config.rate_limit_window_ms / 1000)
        self.retry_handler = retry_handler or RetryHandler(config.retry_attempts, config.retry_delay_ms / 1000)

        self.session = session or requests.Session()
        self.session.auth = (config.username, config.api_key.get_secret_value())
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"mcp-gorgias/{__version__}",
            }
        )
        logger.debug("API Base URL: %s", self.base_url)

    # ==================== TRANSPORT ====================

    def _request(
        self,
        method: str,
        path: str,
        label: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send one API request through the rate limiter and retry envelope.

        Returns:
            Decoded JSON body ({} for empty bodies)

        Raises:
            GorgiasError: Classified failure after retries are exhausted
        """
        url = f"{self.base_url}{path}"

        def attempt() -> Any:
            self.rate_limiter.acquire()
            logger.debug("Making request to %s %s", method, path)
            try:
                response = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                logger.error("Request failed: %s %s (%s)", method, path, type(e).__name__)
                raise classify_http_error(None, f"{type(e).__name__}: {e}") from e

            if response.status_code >= 400:
                detail = _error_detail(response)
                logger.error("Request failed: %s %s (%s %s)", response.status_code, detail, method, path)
                raise classify_http_error(response.status_code, detail)

            logger.debug("Response received: %s from %s", response.status_code, path)
            remaining = response.headers.get(RATE_LIMIT_HEADER)
            if remaining:
                logger.debug("Rate limit usage reported by API: %s", remaining)

            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise NetworkError(f"Invalid JSON in response from {path}", response.status_code) from e

        return self.retry_handler.execute(attempt, label)

    def _get_page(self, path: str, model: type[ModelT], label: str, params: dict[str, Any]) -> Page[ModelT]:
        body = self._request("GET", path, label, params={k: v for k, v in params.items() if v is not None})
        return _parse(Page[model], body, label)  # type: ignore[valid-type]

    @staticmethod
    def _order(order_by: str | None, order_direction: str | None) -> str | None:
        if not order_by:
            return None
        return f"{order_by}:{order_direction or 'desc'}"

    # ==================== CONNECTION ====================

    def test_connection(self) -> bool:
        """Issue a minimal request and report whether it succeeded."""
        try:
            logger.info("Testing Gorgias API connection...")
            self.list_tickets(limit=1)
        except GorgiasError as e:
            logger.error("Gorgias API connection failed: %s", e)
            return False
        logger.info("Gorgias API connection successful")
        return True

    def rate_limit_status(self) -> dict[str, float]:
        """Return remaining local rate limit capacity and the reset time."""
        return {"remaining": self.rate_limiter.remaining(), "reset_time": self.rate_limiter.reset_time()}

    # ==================== TICKETS ====================

    def list_tickets(
        self,
        customer_id: int | None = None,
        status: str | None = None,
        channel: str | None = None,
        tags: list[str] | None = None,
        limit: int = 50,
        cursor: str | None = None,
        order_by: str | None = None,
        order_direction: str = "desc",
    ) -> Page[Ticket]:
        """List tickets.

        The list endpoint only filters by customer; status, channel and tags
        are applied to the returned page.
        """
        page = self._get_page(
            "/tickets",
            Ticket,
            "listTickets",
            {
                "customer_id": customer_id,
                "limit": limit,
                "cursor": cursor,
                "order_by": self._order(order_by, order_direction),
            },
        )
        if status or channel or tags:
            wanted_tags = set(tags or [])
            page.data = [
                ticket
                for ticket in page.data
                if (not status or ticket.status == status)
                and (not channel or ticket.channel == channel)
                and wanted_tags.issubset(ticket.tag_names)
            ]
        return page

    def get_ticket(self, ticket_id: int) -> Ticket:
        """Get a single ticket by ID."""
        return _parse(Ticket, self._request("GET", f"/tickets/{ticket_id}", "getTicket"), "getTicket")

    def list_ticket_messages(self, ticket_id: int, limit: int = 50, cursor: str | None = None) -> Page[Message]:
        """List messages of a ticket."""
        return self._get_page(
            f"/tickets/{ticket_id}/messages", Message, "listTicketMessages", {"limit": limit, "cursor": cursor}
        )

    def update_ticket(self, ticket_id: int, **changes: Any) -> Ticket:
        """Update ticket fields.

        Only keys passed in ``changes`` are sent, and None values are dropped,
        except ``assignee_user_id=None`` which unassigns the ticket. Tags
        replace the existing set.
        """
        payload: dict[str, Any] = {}
        for field, value in changes.items():
            if field == "assignee_user_id":
                payload["assignee_user"] = {"id": value} if value is not None else None
            elif value is None:
                continue
            elif field == "tags":
                payload["tags"] = [{"name": tag} if isinstance(tag, str) else dict(tag) for tag in value]
            else:
                payload[field] = value

        if not payload:
            raise InputValidationError("No fields to update")

        logger.info("Updating ticket %s fields: %s", ticket_id, ", ".join(sorted(payload)))
        body = self._request("PUT", f"/tickets/{ticket_id}", "updateTicket", json=payload)
        return _parse(Ticket, body, "updateTicket")

    def send_reply(
        self,
        ticket_id: int,
        message_type: MessageType | str,
        body_text: str,
        sender_email: str,
        body_html: str | None = None,
        receiver_email: str | None = None,
        subject: str | None = None,
        source_from_address: str | None = None,
    ) -> Message:
        """Post a message on a ticket.

        Raises:
            InputValidationError: If an outgoing message has no receiver, or an
                address is malformed
        """
        message_type = MessageType(message_type)
        if message_type == MessageType.OUTGOING and not receiver_email:
            raise InputValidationError("receiver_email is required for outgoing messages")
        _validate_email(sender_email, "sender_email")
        if receiver_email:
            _validate_email(receiver_email, "receiver_email")
        if source_from_address:
            _validate_email(source_from_address, "source_from_address")

        payload: dict[str, Any] = {
            "via": "api",
            "body_text": body_text,
            "body_html": body_html or body_text,
            "sender": {"email": sender_email},
        }
        if message_type == MessageType.INTERNAL_NOTE:
            payload.update(channel="internal-note", from_agent=True)
        elif message_type == MessageType.OUTGOING:
            payload.update(channel="email", from_agent=True, receiver={"email": receiver_email})
            if source_from_address:
                payload["source"] = {
                    "type": "email",
                    "from": {"address": source_from_address},
                    "to": [{"address": receiver_email}],
                }
        else:
            payload.update(channel="email", from_agent=False)
            if receiver_email:
                payload["receiver"] = {"email": receiver_email}

        if subject and message_type != MessageType.INTERNAL_NOTE:
            payload["subject"] = subject

        logger.info("Sending %s message to ticket %s", message_type.value, ticket_id)
        body = self._request("POST", f"/tickets/{ticket_id}/messages", "sendReply", json=payload)
        return _parse(Message, body, "sendReply")

    def search_tickets(
        self,
        query: str,
        channel: str | None = None,
        status: str | None = None,
        assignee_user_id: int | None = None,
        customer_email: str | None = None,
        tags: list[str] | None = None,
        date_from: Any = None,
        date_to: Any = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> Page[Ticket]:
        """Search tickets, degrading to a filtered listing when search is unavailable."""
        payload: dict[str, Any] = {"type": "ticket", "query": query, "limit": limit}
        filters = {
            "channel": channel,
            "status": status,
            "assignee_user_id": assignee_user_id,
            "customer_email": customer_email,
            "tags": tags,
            "date_from": date_from.isoformat() if hasattr(date_from, "isoformat") else date_from,
            "date_to": date_to.isoformat() if hasattr(date_to, "isoformat") else date_to,
            "cursor": cursor,
        }
        payload.update({k: v for k, v in filters.items() if v is not None})

        try:
            body = self._request("POST", "/search", "searchTickets", json=payload)
        except GorgiasError as e:
            if not _should_fall_back(e):
                raise
            logger.warning("Ticket search unavailable (%s); falling back to client-side filtering", e)
        else:
            return _parse(Page[Ticket], body, "searchTickets")

        page = self.list_tickets(limit=limit, cursor=cursor)
        needle = query.lower()
        email = customer_email.lower() if customer_email else None
        matches = [
            ticket
            for ticket in page.data
            if needle in (ticket.subject or "").lower() or needle in (ticket.customer_email or "").lower()
        ]
        matches = [
            ticket
            for ticket in matches
            if (not status or ticket.status == status)
            and (not channel or ticket.channel == channel)
            and (not email or (ticket.customer_email or "").lower() == email)
        ]
        return Page[Ticket](data=matches, meta=PageMeta(next_cursor=page.next_cursor))

    # ==================== CUSTOMERS ====================

    def list_customers(
        self,
        email: str | None = None,
        external_id: str | None = None,
        limit: int = 50,
        cursor: str | None = None,
        order_by: str | None = None,
        order_direction: str = "desc",
    ) -> Page[Customer]:
        """List customers."""
        return self._get_page(
            "/customers",
            Customer,
            "listCustomers",
            {
                "email": email,
                "external_id": external_id,
                "limit": limit,
                "cursor": cursor,
                "order_by": self._order(order_by, order_direction),
            },
        )

    def get_customer(self, customer_id: int) -> Customer:
        """Get a single customer by ID."""
        return _parse(Customer, self._request("GET", f"/customers/{customer_id}", "getCustomer"), "getCustomer")

    def get_customer_details(
        self,
        customer_id: int,
        include_channels: bool = True,
        include_integrations: bool = True,
        include_meta: bool = True,
    ) -> CustomerDetails:
        """Get a customer with optional channels, metadata and integrations.

        The flags are hints: integrations are fetched best-effort and a failure
        leaves ``integrations`` unset instead of failing the call.
        """
        customer = self.get_customer(customer_id)
        details = CustomerDetails(**customer.model_dump())
        if not include_channels:
            details.channels = []
        if not include_meta:
            details.meta = {}
        if include_integrations:
            try:
                details.integrations = self.get_integrations(active_only=False, limit=100).data
            except GorgiasError as e:
                logger.warning("Could not load integrations for customer %s: %s", customer_id, e)
        return details

    def create_customer(
        self,
        email: str,
        firstname: str | None = None,
        lastname: str | None = None,
        external_id: str | None = None,
        channels: list[dict[str, Any]] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> Customer:
        """Create a customer.

        Raises:
            InputValidationError: If the email is malformed (no request is sent)
        """
        _validate_email(email, "email")
        payload: dict[str, Any] = {"email": email}
        optional = {"firstname": firstname, "lastname": lastname, "external_id": external_id, "meta": meta}
        payload.update({k: v for k, v in optional.items() if v is not None})
        if channels:
            payload["channels"] = [
                {"type": channel["type"], "address": channel["address"], "preferred": index == 0}
                for index, channel in enumerate(channels)
            ]
        if firstname or lastname:
            payload["name"] = f"{firstname or ''} {lastname or ''}".strip()

        logger.info("Creating customer")
        body = self._request("POST", "/customers", "createCustomer", json=payload)
        return _parse(Customer, body, "createCustomer")

    # ==================== EVENTS & INTEGRATIONS ====================

    def list_events(
        self,
        object_type: str | None = None,
        object_id: int | None = None,
        event_type: str | None = None,
        user_id: int | None = None,
        limit: int = 50,
        cursor: str | None = None,
        order_by: str = "created_datetime:desc",
    ) -> Page[Event]:
        """List events, synthesizing ticket activity when the events feed is unavailable."""
        try:
            return self._get_page(
                "/events",
                Event,
                "listEvents",
                {
                    "object_type": object_type,
                    "object_id": object_id,
                    "type": event_type,
                    "user_id": user_id,
                    "limit": limit,
                    "cursor": cursor,
                    "order_by": order_by,
                },
            )
        except GorgiasError as e:
            if not _should_fall_back(e):
                raise
            logger.warning("Events feed unavailable (%s); synthesizing events from tickets", e)

        tickets = self.list_tickets(limit=limit, cursor=cursor, order_by="updated_datetime", order_direction="desc")
        events = [_ticket_event(ticket) for ticket in tickets.data]

        keep: list[Callable[[Event], bool]] = []
        if object_type:
            keep.append(lambda event: event.object_type == object_type)
        if object_id:
            keep.append(lambda event: event.object_id == object_id)
        if user_id:
            keep.append(lambda event: event.user_id == user_id)
        events = [event for event in events if all(check(event) for check in keep)]

        return Page[Event](data=events, meta=PageMeta(next_cursor=tickets.next_cursor))

    def get_integrations(
        self,
        type: str | None = None,  # noqa: A002
        active_only: bool = True,
        limit: int = 50,
    ) -> Page[Integration]:
        """List integrations, optionally only enabled ones of a given type."""
        page = self._get_page("/integrations", Integration, "getIntegrations", {"type": type, "limit": limit})
        page.data = [
            integration
            for integration in page.data
            if (not type or integration.type == type) and (not active_only or integration.enabled)
        ]
        return page
