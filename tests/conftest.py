"""Shared fixtures for the Gorgias MCP test suite."""

from collections.abc import Callable
from typing import Any
from unittest.mock import Mock

import pytest

from mcp_gorgias.config import GorgiasConfig


@pytest.fixture
def decorator_capturer():
    """Capture functions registered through a decorator factory such as ``mcp.tool``.

    Returns a factory; calling it with the original decorator factory yields
    ``(captured, capture)`` where ``capture`` can replace the factory and
    ``captured`` maps function names to the undecorated functions.
    """

    def _make(_original: Callable[..., Any]) -> tuple[dict[str, Callable[..., Any]], Callable[..., Any]]:
        captured: dict[str, Callable[..., Any]] = {}

        def capture(*_args: Any, **_kwargs: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                captured[func.__name__] = func
                return func

            return decorator

        return captured, capture

    return _make


@pytest.fixture
def config():
    """A valid configuration pointing at the 'acme' tenant."""
    return GorgiasConfig(domain="acme", username="agent@acme.com", api_key="super-secret-key")


@pytest.fixture
def make_response():
    """Factory for fake ``requests.Response`` objects."""

    def _make(status_code: int = 200, body: Any = None, headers: dict[str, str] | None = None, text: str = "") -> Mock:
        response = Mock()
        response.status_code = status_code
        response.headers = headers or {}
        response.reason = "Error" if status_code >= 400 else "OK"
        if body is None:
            response.content = text.encode()
            response.text = text
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.content = b"{...}"
            response.text = str(body)
            response.json.return_value = body
        return response

    return _make


@pytest.fixture
def sample_customer_data():
    """Sample customer as returned by the API."""
    return {
        "id": 10,
        "email": "jane@example.com",
        "firstname": "Jane",
        "lastname": "Doe",
        "name": "Jane Doe",
        "external_id": "shop-10",
        "channels": [{"id": 1, "type": "email", "address": "jane@example.com"}],
        "meta": {"vip": True},
        "created_datetime": "2024-01-01T09:00:00+00:00",
    }


@pytest.fixture
def ticket_factory():
    """Factory fixture to create ticket data with custom values."""

    def _make(**overrides: Any) -> dict[str, Any]:
        ticket: dict[str, Any] = {
            "id": 1,
            "status": "open",
            "channel": "email",
            "via": "email",
            "subject": "Where is my order?",
            "customer": {"id": 10, "email": "jane@example.com"},
            "assignee_user": None,
            "tags": [{"name": "shipping"}],
            "created_datetime": "2024-01-15T10:30:00+00:00",
            "updated_datetime": "2024-01-16T08:00:00+00:00",
            "messages_count": 3,
            "satisfaction_survey": None,
        }
        ticket.update(overrides)
        return ticket

    return _make


@pytest.fixture
def sample_message_data():
    """Sample ticket message as returned by the API."""
    return {
        "id": 100,
        "ticket_id": 1,
        "channel": "email",
        "via": "api",
        "from_agent": True,
        "sender": {"email": "agent@acme.com"},
        "receiver": {"email": "jane@example.com"},
        "body_text": "Your order shipped today.",
        "body_html": "Your order shipped today.",
        "created_datetime": "2024-01-16T08:00:00+00:00",
    }
