"""Test fixtures — fresh gateways and a fresh app per test.

Learn: Gateways hold process-wide state (open streams, counters), so
every test gets its own. Gateway fixtures are async so their teardown
(shutdown → task cancellation) runs inside the test's event loop.

Short heartbeat intervals would make tests flaky, so gateways default to
long intervals here; tests that exercise heartbeats pass their own.
"""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from atelier.auth.dependencies import CurrentUser, get_current_user
from atelier.main import create_app
from atelier.realtime.bus import EventBus
from atelier.realtime.data_events import DataEventsGateway
from atelier.realtime.messages import MessageEventsGateway


async def settle(seconds: float = 0.05) -> None:
    """Let producer tasks move queued events into stream outboxes."""
    await asyncio.sleep(seconds)


async def wait_for_active(gateway, count: int, timeout: float = 2.0) -> None:
    """Wait until `gateway` reports `count` open streams."""
    async def _poll():
        while gateway.active_connections != count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture()
def bus():
    return EventBus(name="test")


@pytest_asyncio.fixture()
async def data_events():
    gateway = DataEventsGateway(
        name="test_data_events",
        heartbeat_interval=60,
        diagnostic_interval=60,
        warning_threshold=50,
    )
    yield gateway
    gateway.shutdown()
    await settle(0)


@pytest_asyncio.fixture()
async def message_events():
    gateway = MessageEventsGateway(
        name="test_messages",
        heartbeat_interval=60,
        diagnostic_interval=60,
    )
    yield gateway
    gateway.shutdown()
    await settle(0)


@pytest_asyncio.fixture()
async def app():
    application = create_app()
    yield application
    application.state.data_events.shutdown()
    application.state.message_events.shutdown()
    await settle(0)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client with auth overridden to a manager identity.

    Learn: Overriding get_current_user means tests don't need real JWTs.
    Role checks (require_roles) still run against this identity.
    """
    def override_get_current_user():
        return CurrentUser(user_id="manager-1", role="MANAGER")

    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(app):
    """HTTP client WITHOUT auth override — for testing the real JWT flow."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
