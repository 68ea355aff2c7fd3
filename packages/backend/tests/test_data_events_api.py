"""Stream endpoint tests — auth, filtering, frames end to end.

Learn: httpx's ASGITransport hands back the response only once the body
is complete, and an SSE body never completes on its own. So each test
starts the request in a task, waits for the stream to register with the
gateway, publishes, and then shuts the gateway down to end the body.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from atelier.auth.jwt import create_access_token
from atelier.events.types import EntityKind
from atelier.realtime.frames import parse_frames

from conftest import settle, wait_for_active


async def start_stream(client, gateway, path, **params):
    request = asyncio.create_task(client.get(path, params=params))
    await wait_for_active(gateway, 1)
    return request


async def finish_stream(gateway, request):
    await settle()
    gateway.shutdown()
    return await asyncio.wait_for(request, 2.0)


# ═══════════════════════════════════════════════════════════
# Data-change stream
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_stream_delivers_matching_changes(client, app):
    gateway = app.state.data_events
    request = await start_stream(
        client, gateway, "/api/v1/data-events/stream", entities="attendance"
    )

    gateway.emit_created(EntityKind.SCHEDULE, "s1", {"room": "Studio 2"})
    gateway.emit_created(EntityKind.ATTENDANCE, "a1", {"status": "PRESENT"}, user_id="u7")

    r = await finish_stream(gateway, request)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache"
    assert r.headers["x-accel-buffering"] == "no"

    frames = parse_frames(r.text)
    assert [f.event for f in frames] == ["data-change"]
    payload = frames[0].payload()
    assert payload["type"] == "created"
    assert payload["entity"] == "attendance"
    assert payload["entityId"] == "a1"
    assert payload["data"] == {"status": "PRESENT"}
    assert payload["userId"] == "u7"


@pytest.mark.asyncio
async def test_stream_without_filter_receives_every_kind(client, app):
    gateway = app.state.data_events
    request = await start_stream(client, gateway, "/api/v1/data-events/stream")

    gateway.emit_updated(EntityKind.INVOICE, "inv-1", {"status": "PAID"})
    gateway.emit_deleted(EntityKind.CLIENT, "c1")

    r = await finish_stream(gateway, request)
    payloads = [f.payload() for f in parse_frames(r.text)]
    assert [(p["entity"], p["type"]) for p in payloads] == [
        ("invoice", "updated"),
        ("client", "deleted"),
    ]
    assert payloads[1]["data"] is None


@pytest.mark.asyncio
async def test_stream_closed_updates_counters(client, app):
    gateway = app.state.data_events
    request = await start_stream(client, gateway, "/api/v1/data-events/stream")

    await finish_stream(gateway, request)

    stats = gateway.get_diagnostics()
    assert stats.active == 0
    assert stats.total_opened == 1
    assert stats.total_closed == 1


@pytest.mark.asyncio
async def test_unknown_entity_rejected(client, app):
    r = await client.get(
        "/api/v1/data-events/stream", params={"entities": "attendance,rental"}
    )
    assert r.status_code == 422
    assert "rental" in r.json()["detail"]
    assert app.state.data_events.get_diagnostics().total_opened == 0


@pytest.mark.asyncio
async def test_stats_endpoint(client, app):
    gateway = app.state.data_events
    gateway.open_stream()
    gateway.open_stream().close()

    r = await client.get("/api/v1/data-events/stats")
    assert r.status_code == 200
    assert r.json() == {
        "activeConnections": 1,
        "peakConnections": 2,
        "totalConnectionsOpened": 2,
        "totalConnectionsClosed": 1,
    }


# ═══════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_stream_requires_auth(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/data-events/stream")
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_stats_requires_auth(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/data-events/stats")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(unauthenticated_client):
    r = await unauthenticated_client.get(
        "/api/v1/data-events/stats", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert r.status_code == 401
    assert r.json()["detail"].startswith("Invalid token")


@pytest.mark.asyncio
async def test_expired_token_rejected(unauthenticated_client):
    token = create_access_token("u1", expires_minutes=-1)
    r = await unauthenticated_client.get(
        "/api/v1/data-events/stats", headers={"Authorization": f"Bearer {token}"}
    )
    assert r.status_code == 401
    assert r.json()["detail"] == "Token has expired"


@pytest.mark.asyncio
async def test_bearer_header_accepted(unauthenticated_client):
    token = create_access_token("u1", role="ADMIN")
    r = await unauthenticated_client.get(
        "/api/v1/data-events/stats", headers={"Authorization": f"Bearer {token}"}
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_query_token_accepted_for_event_source(unauthenticated_client, app):
    """EventSource can't set headers, so the token may ride in ?token=."""
    gateway = app.state.data_events
    token = create_access_token("u1", role="MANAGER")
    request = await start_stream(
        unauthenticated_client,
        gateway,
        "/api/v1/data-events/stream",
        token=token,
        entities="payment",
    )

    gateway.emit_created(EntityKind.PAYMENT, "p1", {"amount": 2500})

    r = await finish_stream(gateway, request)
    assert r.status_code == 200
    assert [f.payload()["entityId"] for f in parse_frames(r.text)] == ["p1"]


# ═══════════════════════════════════════════════════════════
# Messages stream
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_messages_stream_delivers_notifications(client, app):
    gateway = app.state.message_events
    gateway.emit_unread_count(3)
    request = await start_stream(client, gateway, "/api/v1/messages/stream")

    gateway.emit_new_message("conv-1", datetime(2025, 4, 1, 10, 0, tzinfo=timezone.utc))
    gateway.emit_unread_count(4)

    r = await finish_stream(gateway, request)
    assert r.status_code == 200
    payloads = [f.payload() for f in parse_frames(r.text)]
    assert payloads == [
        {"type": "unread-count", "count": 3},
        {
            "type": "new-message",
            "conversationId": "conv-1",
            "createdAt": "2025-04-01T10:00:00.000Z",
        },
        {"type": "unread-count", "count": 4},
    ]


@pytest.mark.asyncio
async def test_messages_stream_requires_manager_role(unauthenticated_client, app):
    token = create_access_token("reception-1", role="RECEPTIONIST")
    r = await unauthenticated_client.get(
        "/api/v1/messages/stream", headers={"Authorization": f"Bearer {token}"}
    )
    assert r.status_code == 403
    assert app.state.message_events.get_diagnostics().total_opened == 0


@pytest.mark.asyncio
async def test_messages_stream_requires_auth(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/messages/stream")
    assert r.status_code == 401
