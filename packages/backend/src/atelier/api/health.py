"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and
reports the SSE connection counters of each channel, so an ops
dashboard can spot connection leaks.
"""

from fastapi import APIRouter, Depends

from atelier import __version__
from atelier.api.deps import get_data_events, get_message_events
from atelier.realtime.data_events import DataEventsGateway
from atelier.realtime.messages import MessageEventsGateway

router = APIRouter()


@router.get("/health")
async def health_check(
    data_events: DataEventsGateway = Depends(get_data_events),
    message_events: MessageEventsGateway = Depends(get_message_events),
):
    """Check server health and report stream diagnostics."""
    accepting = not data_events.bus.closed and not message_events.bus.closed
    return {
        "status": "healthy" if accepting else "shutting_down",
        "server": "ok",
        "version": __version__,
        "sse": {
            "dataEvents": data_events.get_diagnostics().as_dict(),
            "messages": message_events.get_diagnostics().as_dict(),
        },
    }
