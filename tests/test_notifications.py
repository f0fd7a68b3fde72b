from __future__ import annotations

import pytest

from apps.api.services.authorization import Role
from apps.api.services.errors import NotificationNotFoundError
from apps.api.services.notifications import resolve_recipients


def test_resolve_recipients_deduplicates_and_excludes_actor():
    recipients = resolve_recipients(
        admin_ids=["admin-1", "admin-2"],
        owner_id="admin-2",
        assigned_to_id="support-1",
        actor_id="admin-1",
    )
    assert recipients == ["admin-2", "support-1"]


def test_resolve_recipients_without_actor_keeps_everyone():
    recipients = resolve_recipients(
        admin_ids=["admin-1"], owner_id="requester-1", assigned_to_id=None, actor_id=None
    )
    assert recipients == ["admin-1", "requester-1"]


def test_resolve_recipients_may_be_empty():
    assert resolve_recipients(admin_ids=[], owner_id="me", assigned_to_id="me", actor_id="me") == []


async def _notification_counts(ledger, actors, ids):
    counts = {}
    for user_id in ids:
        counts[user_id] = len(await ledger.list_notifications(actors[user_id]))
    return counts


@pytest.mark.asyncio
async def test_comment_notifies_owner_assignee_and_admins_except_author(service, actors, reference_data, ledger):
    ticket = await service.create_ticket(
        actors["requester-1"], title="Monitor flickers", description="Desk 12", category_id=reference_data["category"].id
    )
    await service.assign_to_support(actors["admin-1"], ticket.id, support_actor_id="support-1")
    # assign notified admin-2, requester-1, support-1
    await service.add_comment(actors["support-1"], ticket.id, content="Replacing the cable")

    counts = await _notification_counts(ledger, actors, list(actors))
    assert counts == {
        "admin-1": 1,
        "admin-2": 2,
        "support-1": 1,
        "support-2": 0,
        "requester-1": 2,
        "requester-2": 0,
    }

    latest = (await ledger.list_notifications(actors["requester-1"]))[0]
    assert latest.title == f"New comment on ticket #{ticket.id}"
    assert "Replacing the cable" in latest.message
    assert latest.link == f"/tickets/{ticket.id}"
    assert latest.is_read is False


@pytest.mark.asyncio
async def test_admin_holding_several_parts_is_notified_once(service, directory, actors, reference_data, ledger):
    await directory.grant_role("admin-2", Role.SUPPORT)
    admin_support = await directory.get_actor("admin-2")
    ticket = await service.create_ticket(
        admin_support, title="Server room hot", description="AC off", category_id=reference_data["category"].id
    )
    await service.take_ticket(admin_support, ticket.id)
    before = len(await ledger.list_notifications(admin_support))

    await service.add_comment(actors["support-1"], ticket.id, content="Checking the unit")

    after = await ledger.list_notifications(admin_support)
    assert len(after) - before == 1
    assert len(await ledger.list_notifications(actors["support-1"])) == 0


@pytest.mark.asyncio
async def test_ledger_orders_newest_first_and_tracks_unread(service, actors, reference_data, ledger):
    ticket = await service.create_ticket(
        actors["requester-1"], title="Keyboard", description="Sticky keys", category_id=reference_data["category"].id
    )
    admin = actors["admin-1"]
    await service.change_status(admin, ticket.id, status="Open")
    await service.change_priority(admin, ticket.id, priority_id=reference_data["high"].id)
    await service.change_status(admin, ticket.id, status="Resolved")

    owner = actors["requester-1"]
    notifications = await ledger.list_notifications(owner)
    assert [n.title for n in notifications] == [
        f"Ticket #{ticket.id} status changed",
        f"Ticket #{ticket.id} priority changed",
        f"Ticket #{ticket.id} status changed",
    ]
    assert "Resolved" in notifications[0].message
    assert notifications[0].created_at > notifications[-1].created_at
    assert await ledger.unread_count(owner) == 3

    await ledger.mark_read(owner, notifications[1].id)
    await ledger.mark_read(owner, notifications[1].id)
    assert await ledger.unread_count(owner) == 2

    assert await ledger.mark_all_read(owner) == 2
    assert await ledger.unread_count(owner) == 0
    assert await ledger.mark_all_read(owner) == 0
    assert len(await ledger.list_notifications(owner)) == 3


@pytest.mark.asyncio
async def test_foreign_notification_is_reported_as_missing(service, actors, reference_data, ledger):
    ticket = await service.create_ticket(
        actors["requester-1"], title="Mouse", description="Wireless lag", category_id=reference_data["category"].id
    )
    await service.change_status(actors["admin-1"], ticket.id, status="Open")
    foreign = (await ledger.list_notifications(actors["requester-1"]))[0]

    with pytest.raises(NotificationNotFoundError):
        await ledger.mark_read(actors["requester-2"], foreign.id)
    with pytest.raises(NotificationNotFoundError):
        await ledger.mark_read(actors["requester-2"], 99999)

    assert await ledger.unread_count(actors["requester-1"]) == 1


@pytest.mark.asyncio
async def test_system_event_notifies_everyone(fanout, service, actors, reference_data, ledger):
    ticket = await service.create_ticket(
        actors["requester-1"], title="Disk full", description="C: drive", category_id=reference_data["category"].id
    )

    created = await fanout.publish(ticket, actor_id=None, title="Maintenance", message="Tonight")

    assert sorted(n.recipient_id for n in created) == ["admin-1", "admin-2", "requester-1"]
