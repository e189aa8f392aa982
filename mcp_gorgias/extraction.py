"""Customer email extraction: per-customer ticket rollups."""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timezone

from .client import GorgiasClient
from .errors import GorgiasError
from .models import Customer, CustomerEmailData, Ticket

logger = logging.getLogger(__name__)

CUSTOMER_PAGE_SIZE = 100
TICKETS_PER_CUSTOMER = 50


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _in_range(ticket: Ticket, start: datetime | None, end: datetime | None) -> bool:
    created = _as_utc(ticket.created_datetime)
    if start and created < start:
        return False
    return not (end and created > end)


def _unique(values: Iterable[str | None]) -> list[str]:
    """Deduplicate, keeping first-seen order."""
    return list(dict.fromkeys(v for v in values if v))


def summarize_customer(
    customer: Customer,
    tickets: list[Ticket],
    include_tags: bool = False,
    include_satisfaction: bool = False,
) -> CustomerEmailData:
    """Roll a customer's (already filtered) tickets up into one record."""
    newest_first = sorted(tickets, key=lambda t: _as_utc(t.created_datetime), reverse=True)
    latest = newest_first[0] if newest_first else None

    satisfaction: float | None = None
    if include_satisfaction:
        scores = [
            t.satisfaction_survey.score
            for t in tickets
            if t.satisfaction_survey and t.satisfaction_survey.score is not None
        ]
        if scores:
            satisfaction = round(sum(scores) / len(scores), 2)

    return CustomerEmailData(
        customer_id=customer.id,
        email=customer.email,
        firstname=customer.firstname,
        lastname=customer.lastname,
        ticket_count=len(tickets),
        last_ticket_date=latest.created_datetime if latest else None,
        tags=_unique(name for t in tickets for name in t.tag_names) if include_tags else [],
        status=latest.status if latest else "unknown",
        satisfaction_score=satisfaction,
        total_messages=sum(t.messages_count for t in tickets),
        channels=_unique(t.channel for t in tickets),
    )


def extract_customer_emails(
    client: GorgiasClient,
    date_from: date | None = None,
    date_to: date | None = None,
    status_filter: list[str] | None = None,
    include_tags: bool = False,
    include_satisfaction: bool = False,
    limit: int = 100,
) -> list[CustomerEmailData]:
    """Build one summary record per customer, newest customers first.

    Customers are processed one at a time. A customer whose tickets cannot be
    fetched is logged and left out; a failure to page customers propagates.

    Args:
        client: API client
        date_from: Only count tickets created on or after this day (UTC)
        date_to: Only count tickets created on or before this day (UTC, inclusive)
        status_filter: Only count tickets in these statuses
        include_tags: Collect the union of ticket tags
        include_satisfaction: Average satisfaction survey scores
        limit: Maximum number of customers to summarize

    Returns:
        Records in processing order, at most ``limit`` of them
    """
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = datetime.combine(date_to, time.max, tzinfo=timezone.utc) if date_to else None
    statuses = set(status_filter or [])

    results: list[CustomerEmailData] = []
    cursor: str | None = None
    logger.info("Extracting customer emails (limit=%d)", limit)

    while len(results) < limit:
        page = client.list_customers(
            limit=min(CUSTOMER_PAGE_SIZE, limit - len(results)),
            cursor=cursor,
            order_by="created_datetime",
            order_direction="desc",
        )

        for customer in page.data:
            if len(results) >= limit:
                break
            try:
                tickets = client.list_tickets(customer_id=customer.id, limit=TICKETS_PER_CUSTOMER).data
                tickets = [t for t in tickets if _in_range(t, start, end)]
                if statuses:
                    tickets = [t for t in tickets if t.status in statuses]
                record = summarize_customer(customer, tickets, include_tags, include_satisfaction)
            except GorgiasError as e:
                logger.warning("Skipping customer %s: %s", customer.id, e)
                continue
            results.append(record)

        cursor = page.next_cursor
        if not cursor or not page.data:
            break

    logger.info("Extracted %d customer records", len(results))
    return results
