from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from apps.api.core.config import Settings
from apps.api.dependencies import auth as auth_deps
from apps.api.dependencies import services as service_deps
from apps.api.main import create_app
from apps.api.services.authorization import Actor, Role
from apps.api.services.errors import (
    ForbiddenError,
    NotificationNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from apps.api.services.models import Notification, Priority, Ticket, TicketComment, TicketDetail

NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def _make_ticket(**overrides) -> Ticket:
    values = dict(
        id=7,
        title="VPN drops",
        description="Every hour",
        category_id=1,
        priority_id=2,
        status="New",
        owner_id="requester-1",
        assigned_to_id=None,
        created_at=NOW,
    )
    values.update(overrides)
    return Ticket(**values)


@pytest.fixture
def api_client():
    app = create_app()
    service = AsyncMock()
    ledger = AsyncMock()
    requester = Actor.with_roles("requester-1", [Role.REQUESTER])

    async def override_service():
        return service

    async def override_ledger():
        return ledger

    app.dependency_overrides[service_deps.get_ticket_service] = override_service
    app.dependency_overrides[service_deps.get_notification_ledger] = override_ledger
    app.dependency_overrides[auth_deps.get_current_actor] = lambda: requester

    client = TestClient(app)
    try:
        yield client, service, ledger
    finally:
        app.dependency_overrides.clear()


def test_create_ticket_returns_created(api_client):
    client, service, _ = api_client
    service.create_ticket = AsyncMock(return_value=_make_ticket())

    response = client.post(
        "/tickets",
        json={"title": "VPN drops", "description": "Every hour", "category_id": 1, "status": "Closed"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == 7
    assert body["status"] == "New"
    assert body["owner_id"] == "requester-1"
    service.create_ticket.assert_awaited_once()
    kwargs = service.create_ticket.await_args.kwargs
    assert kwargs == {"title": "VPN drops", "description": "Every hour", "category_id": 1}


def test_get_ticket_includes_comments(api_client):
    client, service, _ = api_client
    comment = TicketComment(id=3, ticket_id=7, author_id="support-1", content="On it", created_at=NOW)
    service.get_ticket = AsyncMock(return_value=TicketDetail(ticket=_make_ticket(), comments=[comment]))

    response = client.get("/tickets/7")

    assert response.status_code == 200
    assert response.json()["comments"][0]["content"] == "On it"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (TicketNotFoundError("Ticket 7 not found"), 404),
        (ForbiddenError("requester-1 may not change the status of ticket 7"), 403),
        (ValidationError("Status must not be empty"), 400),
    ],
)
def test_service_errors_map_to_http_status(api_client, error, expected):
    client, service, _ = api_client
    service.change_status = AsyncMock(side_effect=error)

    response = client.post("/tickets/7/status", json={"status": "Closed"})

    assert response.status_code == expected
    assert response.json()["detail"] == str(error)


def test_delete_and_take_endpoints(api_client):
    client, service, _ = api_client
    service.delete_ticket = AsyncMock(return_value=None)
    service.take_ticket = AsyncMock(return_value=_make_ticket(assigned_to_id="support-1"))

    assert client.delete("/tickets/7").status_code == 204
    taken = client.post("/tickets/7/take")

    assert taken.status_code == 200
    assert taken.json()["assigned_to_id"] == "support-1"


def test_add_comment_rejects_oversized_content(api_client):
    client, service, _ = api_client
    service.add_comment = AsyncMock()

    response = client.post("/tickets/7/comments", json={"content": "x" * 1001})

    assert response.status_code == 422
    service.add_comment.assert_not_awaited()


def test_reference_lists(api_client):
    client, service, _ = api_client
    service.list_priorities = AsyncMock(return_value=[Priority(id=1, name="Low")])

    response = client.get("/priorities")

    assert response.status_code == 200
    assert response.json() == [{"id": 1, "name": "Low"}]


def test_notification_endpoints(api_client):
    client, _, ledger = api_client
    notification = Notification(
        id=11,
        recipient_id="requester-1",
        title="Ticket #7 status changed",
        message="Closed",
        link="/tickets/7",
        is_read=False,
        created_at=NOW,
    )
    ledger.list_notifications = AsyncMock(return_value=[notification])
    ledger.unread_count = AsyncMock(return_value=1)
    ledger.mark_all_read = AsyncMock(return_value=1)
    ledger.mark_read = AsyncMock(side_effect=NotificationNotFoundError("Notification 12 not found"))

    listed = client.get("/notifications")
    assert listed.status_code == 200
    assert listed.json()[0]["link"] == "/tickets/7"

    assert client.get("/notifications/unread-count").json() == {"unread": 1}
    assert client.post("/notifications/read-all").json() == {"updated": 1}
    assert client.post("/notifications/12/read").status_code == 404


def test_missing_token_is_unauthorized():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[auth_deps.get_user_directory] = lambda: AsyncMock()
    app.dependency_overrides[service_deps.get_ticket_service] = override_service
    client = TestClient(app)

    response = client.get("/tickets")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    service.list_tickets.assert_not_awaited()


def test_token_resolves_actor_with_current_roles(monkeypatch):
    app = create_app()
    directory = AsyncMock()
    directory.get_actor = AsyncMock(return_value=Actor.with_roles("support-1", [Role.SUPPORT]))
    service = AsyncMock()
    service.list_tickets = AsyncMock(return_value=[])

    async def override_service():
        return service

    monkeypatch.setattr(auth_deps, "get_settings", lambda: Settings(auth_tokens={"s3cret": "support-1"}))
    app.dependency_overrides[auth_deps.get_user_directory] = lambda: directory
    app.dependency_overrides[service_deps.get_ticket_service] = override_service
    client = TestClient(app)

    assert client.get("/tickets", headers={"Authorization": "Bearer wrong"}).status_code == 401
    response = client.get("/tickets", headers={"Authorization": "Bearer s3cret"})

    assert response.status_code == 200
    directory.get_actor.assert_awaited_with("support-1")
    actor = service.list_tickets.await_args.args[0]
    assert actor.is_support
