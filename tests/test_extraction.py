"""Tests for customer email extraction."""

from datetime import date
from unittest.mock import Mock

import pytest

from mcp_gorgias.client import GorgiasClient
from mcp_gorgias.errors import NetworkError, RateLimitExceededError
from mcp_gorgias.extraction import extract_customer_emails, summarize_customer
from mcp_gorgias.models import Customer, Page, Ticket
from mcp_gorgias.retry import RetryHandler


def _customers(*ids: int, next_cursor: str | None = None) -> Page[Customer]:
    return Page[Customer].model_validate(
        {
            "data": [{"id": i, "email": f"c{i}@example.com", "firstname": f"First{i}"} for i in ids],
            "meta": {"next_cursor": next_cursor},
        }
    )


def _tickets(*tickets: dict) -> Page[Ticket]:
    return Page[Ticket].model_validate({"data": list(tickets)})


@pytest.fixture
def client():
    return Mock()


def test_failed_customer_is_skipped(client, ticket_factory):
    client.list_customers.return_value = _customers(1, 2, 3)
    client.list_tickets.side_effect = [
        _tickets(ticket_factory(id=11)),
        NetworkError("Server error (500)", 500),
        _tickets(ticket_factory(id=31), ticket_factory(id=32)),
    ]

    records = extract_customer_emails(client, limit=10)

    assert [r.customer_id for r in records] == [1, 3]
    assert records[1].ticket_count == 2
    client.list_tickets.assert_any_call(customer_id=2, limit=50)


def test_customer_page_failure_propagates(client):
    client.list_customers.side_effect = RateLimitExceededError("slow down", 429)

    with pytest.raises(RateLimitExceededError):
        extract_customer_emails(client)


def test_customers_paged_newest_first_until_limit(client, ticket_factory):
    client.list_customers.side_effect = [_customers(1, 2, next_cursor="p2"), _customers(3, 4, next_cursor="p3")]
    client.list_tickets.return_value = _tickets(ticket_factory())

    records = extract_customer_emails(client, limit=3)

    assert [r.customer_id for r in records] == [1, 2, 3]
    first, second = client.list_customers.call_args_list
    assert first.kwargs == {"limit": 3, "cursor": None, "order_by": "created_datetime", "order_direction": "desc"}
    assert second.kwargs["cursor"] == "p2"
    assert second.kwargs["limit"] == 1


def test_stops_when_no_more_customers(client, ticket_factory):
    client.list_customers.return_value = _customers(1)
    client.list_tickets.return_value = _tickets()

    records = extract_customer_emails(client, limit=100)

    assert len(records) == 1
    client.list_customers.assert_called_once()
    assert records[0].ticket_count == 0
    assert records[0].status == "unknown"
    assert records[0].last_ticket_date is None


def test_date_range_is_inclusive(client, ticket_factory):
    client.list_customers.return_value = _customers(1)
    client.list_tickets.return_value = _tickets(
        ticket_factory(id=1, created_datetime="2023-12-31T23:59:59+00:00"),
        ticket_factory(id=2, created_datetime="2024-01-01T00:00:00+00:00"),
        ticket_factory(id=3, created_datetime="2024-01-31T18:00:00Z"),
        ticket_factory(id=4, created_datetime="2024-02-01T00:00:00+00:00"),
    )

    records = extract_customer_emails(client, date_from=date(2024, 1, 1), date_to=date(2024, 1, 31))

    assert records[0].ticket_count == 2


def test_naive_datetimes_compared_as_utc(client, ticket_factory):
    client.list_customers.return_value = _customers(1)
    client.list_tickets.return_value = _tickets(
        ticket_factory(id=1, created_datetime="2024-01-01T00:00:00"),
        ticket_factory(id=2, created_datetime="2023-06-01T00:00:00"),
    )

    records = extract_customer_emails(client, date_from=date(2024, 1, 1))

    assert records[0].ticket_count == 1


def test_status_filter(client, ticket_factory):
    client.list_customers.return_value = _customers(1)
    client.list_tickets.return_value = _tickets(
        ticket_factory(id=1, status="open"),
        ticket_factory(id=2, status="closed"),
        ticket_factory(id=3, status="spam"),
    )

    records = extract_customer_emails(client, status_filter=["open", "closed"])

    assert records[0].ticket_count == 2


def test_rollup_fields(ticket_factory):
    customer = Customer(id=5, email="jane@example.com", firstname="Jane", lastname="Doe")
    tickets = [
        Ticket.model_validate(
            ticket_factory(
                id=1,
                status="closed",
                channel="email",
                tags=[{"name": "vip"}, {"name": "refund"}],
                created_datetime="2024-01-01T00:00:00Z",
                messages_count=2,
                satisfaction_survey={"score": 4},
            )
        ),
        Ticket.model_validate(
            ticket_factory(
                id=2,
                status="open",
                channel="chat",
                tags=[{"name": "refund"}, {"name": "shipping"}],
                created_datetime="2024-03-01T00:00:00Z",
                messages_count=5,
                satisfaction_survey={"score": 5},
            )
        ),
        Ticket.model_validate(
            ticket_factory(id=3, status="pending", channel="email", created_datetime="2024-02-01T00:00:00Z")
        ),
    ]

    record = summarize_customer(customer, tickets, include_tags=True, include_satisfaction=True)

    assert record.ticket_count == 3
    assert record.last_ticket_date.isoformat() == "2024-03-01T00:00:00+00:00"
    assert record.status == "open"
    assert record.tags == ["vip", "refund", "shipping"]
    assert record.channels == ["email", "chat"]
    assert record.total_messages == 10
    assert record.satisfaction_score == 4.5


def test_rollup_without_scores_or_flags(ticket_factory):
    customer = Customer(id=5)
    tickets = [Ticket.model_validate(ticket_factory(satisfaction_survey={"score": None}))]

    with_flags = summarize_customer(customer, tickets, include_tags=True, include_satisfaction=True)
    without_flags = summarize_customer(customer, tickets)

    assert with_flags.satisfaction_score is None
    assert without_flags.tags == []
    assert without_flags.satisfaction_score is None


def test_satisfaction_rounded_to_two_places(ticket_factory):
    tickets = [
        Ticket.model_validate(ticket_factory(id=i, satisfaction_survey={"score": score}))
        for i, score in enumerate([5, 4, 4], start=1)
    ]

    record = summarize_customer(Customer(id=1), tickets, include_satisfaction=True)

    assert record.satisfaction_score == 4.33


def test_malformed_ticket_payload_skips_customer(config, make_response, ticket_factory):
    session = Mock()
    session.headers = {}
    session.request.side_effect = [
        make_response(200, {"data": [{"id": i, "email": f"c{i}@example.com"} for i in (1, 2, 3)], "meta": {}}),
        make_response(200, {"data": [ticket_factory(id=10)]}),
        make_response(200, {"data": [{"id": 20, "status": None, "created_datetime": None}]}),
        make_response(200, {"data": [ticket_factory(id=30)]}),
    ]
    gorgias = GorgiasClient(
        config, rate_limiter=Mock(), retry_handler=RetryHandler(sleep=lambda _s: None), session=session
    )

    records = extract_customer_emails(gorgias, limit=10)

    assert [r.customer_id for r in records] == [1, 3]
    assert session.request.call_count == 4


def test_summary_failure_skips_customer(client, ticket_factory, monkeypatch):
    client.list_customers.return_value = _customers(1, 2)
    client.list_tickets.return_value = _tickets(ticket_factory())
    real_summarize = summarize_customer

    def flaky_summarize(customer, *args):
        if customer.id == 1:
            raise NetworkError("Unexpected response from listTickets: 1 invalid field(s) (status)")
        return real_summarize(customer, *args)

    monkeypatch.setattr("mcp_gorgias.extraction.summarize_customer", flaky_summarize)

    records = extract_customer_emails(client)

    assert [r.customer_id for r in records] == [2]
