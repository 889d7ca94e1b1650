import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.dependencies import tickets as ticket_deps
from app.main import create_app
from app.tickets.errors import (
    AttachmentUploadError,
    InvalidTicketStatusError,
    TicketNotFoundError,
    TicketStoreError,
    TicketValidationError,
)
from app.tickets.models import Message, Ticket, TicketThread
from app.tickets.state import TicketStatus


def _settings(**overrides) -> Settings:
    fields = {
        "database_url": None,
        "admin_password": "hunter2",
        "cloudinary_cloud_name": None,
        "cloudinary_api_key": None,
        "cloudinary_api_secret": None,
        "otel_enabled": False,
    }
    fields.update(overrides)
    return Settings(**fields)


def _make_ticket(*, status: TicketStatus = TicketStatus.NEW) -> Ticket:
    return Ticket(
        id="ticket-1",
        name="A",
        email="a@x.com",
        description="broken",
        attachment_url=None,
        status=status,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def _make_message(*, author: str = "support", text: str = "looking into it") -> Message:
    return Message(
        id="msg-1",
        ticket_id="ticket-1",
        author=author,
        message=text,
        created_at=datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def ticket_client():
    app = create_app(_settings())
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_service

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def live_client():
    with TestClient(create_app(_settings())) as client:
        yield client


def test_create_ticket_endpoint_returns_camel_case_ticket(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(return_value=_make_ticket())

    response = client.post("/api/tickets", data={"name": "A", "email": "a@x.com", "description": "broken"})

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "ticket-1"
    assert body["attachmentUrl"] is None
    assert body["status"] == "new"
    assert "createdAt" in body
    service.create_ticket.assert_awaited_with(name="A", email="a@x.com", description="broken", attachment=None)


def test_create_ticket_endpoint_passes_attachment_bytes(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(return_value=_make_ticket())

    response = client.post(
        "/api/tickets",
        data={"name": "A", "email": "a@x.com", "description": "broken"},
        files={"attachment": ("shot.png", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 200
    assert service.create_ticket.await_args.kwargs["attachment"] == b"\x89PNG"


def test_create_ticket_endpoint_treats_empty_file_part_as_no_attachment(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(return_value=_make_ticket())

    response = client.post(
        "/api/tickets",
        data={"name": "A", "email": "a@x.com", "description": "broken"},
        files={"attachment": ("", b"", "application/octet-stream")},
    )

    assert response.status_code == 200
    assert service.create_ticket.await_args.kwargs["attachment"] is None


def test_create_ticket_endpoint_maps_validation_error(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(side_effect=TicketValidationError("name, email, description required"))

    response = client.post("/api/tickets", data={"name": "A"})

    assert response.status_code == 400
    assert response.json() == {"error": "name, email, description required"}


@pytest.mark.parametrize("error", [AttachmentUploadError("cdn down"), TicketStoreError("db down")])
def test_create_ticket_endpoint_hides_collaborator_failures(ticket_client, error):
    client, service = ticket_client
    service.create_ticket = AsyncMock(side_effect=error)

    response = client.post("/api/tickets", data={"name": "A", "email": "a@x.com", "description": "broken"})

    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}


def test_list_tickets_endpoint_returns_array(ticket_client):
    client, service = ticket_client
    service.list_tickets = AsyncMock(return_value=[_make_ticket(status=TicketStatus.RESOLVED)])

    response = client.get("/api/tickets")

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["status"] == "resolved"


def test_unexpected_errors_answer_json_server_error(caplog):
    app = create_app(_settings())
    service = AsyncMock()
    service.list_tickets = AsyncMock(side_effect=OSError("disk unavailable"))

    async def override_service():
        return service

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_service
    client = TestClient(app, raise_server_exceptions=False)

    with caplog.at_level(logging.ERROR, logger="app.main"):
        response = client.get("/api/tickets")

    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}
    assert any(record.exc_info and record.exc_info[0] is OSError for record in caplog.records)


def test_list_tickets_endpoint_store_failure(ticket_client):
    client, service = ticket_client
    service.list_tickets = AsyncMock(side_effect=TicketStoreError("db down"))

    response = client.get("/api/tickets")

    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}


def test_ticket_detail_endpoint_returns_thread(ticket_client):
    client, service = ticket_client
    thread = TicketThread(ticket=_make_ticket(), messages=[_make_message(author="A", text="broken")])
    service.get_ticket_detail = AsyncMock(return_value=thread)

    response = client.get("/api/tickets/ticket-1")

    assert response.status_code == 200
    body = response.json()
    assert body["ticket"]["id"] == "ticket-1"
    assert body["messages"][0]["ticketId"] == "ticket-1"
    assert body["messages"][0]["author"] == "A"


def test_ticket_detail_endpoint_not_found(ticket_client):
    client, service = ticket_client
    service.get_ticket_detail = AsyncMock(side_effect=TicketNotFoundError("Ticket nope not found"))

    response = client.get("/api/tickets/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Ticket not found"}


def test_respond_endpoint_passes_optional_author(ticket_client):
    client, service = ticket_client
    service.respond = AsyncMock(return_value=_make_message())

    response = client.post("/api/tickets/ticket-1/respond", json={"message": "looking into it"})

    assert response.status_code == 200
    assert response.json()["author"] == "support"
    service.respond.assert_awaited_with("ticket-1", message="looking into it", author=None)


def test_respond_endpoint_requires_message_field(ticket_client):
    client, service = ticket_client

    response = client.post("/api/tickets/ticket-1/respond", json={"author": "agent"})

    assert response.status_code == 400
    assert "message" in response.json()["error"]
    service.respond.assert_not_awaited()


def test_reply_and_status_errors_are_documented(ticket_client):
    client, _ = ticket_client

    paths = client.get("/openapi.json").json()["paths"]

    respond_responses = paths["/api/tickets/{ticket_id}/respond"]["post"]["responses"]
    status_responses = paths["/api/tickets/{ticket_id}/status"]["patch"]["responses"]
    assert {"200", "400", "404"} <= set(respond_responses)
    assert {"200", "400", "404"} <= set(status_responses)


def test_change_status_endpoint_invalid_status(ticket_client):
    client, service = ticket_client
    service.set_status = AsyncMock(side_effect=InvalidTicketStatusError("Invalid status: 'archived'"))

    response = client.patch("/api/tickets/ticket-1/status", json={"status": "archived"})

    assert response.status_code == 400


def test_change_status_endpoint_unknown_ticket(ticket_client):
    client, service = ticket_client
    service.set_status = AsyncMock(side_effect=TicketNotFoundError("Ticket nope not found"))

    response = client.patch("/api/tickets/nope/status", json={"status": "resolved"})

    assert response.status_code == 404


def test_service_unavailable_without_lifespan():
    client = TestClient(create_app(_settings()))

    response = client.get("/api/tickets")

    assert response.status_code == 503
    assert response.json() == {"error": "Ticket service is not configured"}


def test_cors_preflight_is_allowed(live_client):
    response = live_client.options(
        "/api/tickets/abc/status",
        headers={
            "Origin": "https://support.example.com",
            "Access-Control-Request-Method": "PATCH",
            "Access-Control-Request-Headers": "Content-Type, Authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_health_endpoint(live_client):
    response = live_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_live_workflow_round_trip(live_client):
    created = live_client.post(
        "/api/tickets",
        data={"name": "A", "email": "a@x.com", "description": "broken"},
    )
    assert created.status_code == 200
    ticket = created.json()
    assert ticket["status"] == "new"
    assert ticket["attachmentUrl"] is None

    rejected = live_client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "archived"})
    assert rejected.status_code == 400

    updated = live_client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "in_progress"})
    assert updated.status_code == 200
    assert updated.json() == {**ticket, "status": "in_progress"}

    reply = live_client.post(f"/api/tickets/{ticket['id']}/respond", json={"message": "looking into it"})
    assert reply.status_code == 200
    assert reply.json()["author"] == "support"

    detail = live_client.get(f"/api/tickets/{ticket['id']}")
    assert detail.status_code == 200
    messages = detail.json()["messages"]
    assert [message["message"] for message in messages] == ["broken", "looking into it"]
    assert messages[0]["author"] == "A"

    listing = live_client.get("/api/tickets")
    assert [item["id"] for item in listing.json()] == [ticket["id"]]


def test_live_missing_fields_and_unknown_ticket(live_client):
    missing = live_client.post("/api/tickets", data={"name": "A", "description": "broken"})
    assert missing.status_code == 400
    assert missing.json() == {"error": "name, email, description required"}
    assert live_client.get("/api/tickets").json() == []

    assert live_client.get("/api/tickets/unknown").status_code == 404
    assert live_client.post("/api/tickets/unknown/respond", json={"message": "hi"}).status_code == 404
    assert live_client.patch("/api/tickets/unknown/status", json={"status": "resolved"}).status_code == 404


def test_live_attachment_without_uploader_is_server_error(live_client):
    response = live_client.post(
        "/api/tickets",
        data={"name": "A", "email": "a@x.com", "description": "broken"},
        files={"attachment": ("shot.png", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}
    assert live_client.get("/api/tickets").json() == []


def test_live_empty_file_part_creates_ticket_without_attachment(live_client):
    response = live_client.post(
        "/api/tickets",
        data={"name": "A", "email": "a@x.com", "description": "broken"},
        files={"attachment": ("", b"", "application/octet-stream")},
    )

    assert response.status_code == 200
    assert response.json()["attachmentUrl"] is None
    assert len(live_client.get("/api/tickets").json()) == 1
