"""Messaging notification stream API.

Learn: Managers' browsers keep

    GET /api/v1/messages/stream?token=<jwt>

open to update the unread badge in real time. Only ADMIN and MANAGER
users may listen.
"""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from atelier.api.deps import get_message_events
from atelier.auth.dependencies import CurrentUser, require_roles
from atelier.realtime.frames import SSE_HEADERS, encode_stream
from atelier.realtime.messages import MessageEventsGateway

logger = structlog.get_logger()
router = APIRouter(prefix="/messages")


@router.get("/stream")
async def stream_messages(
    user: CurrentUser = Depends(require_roles("ADMIN", "MANAGER")),
    gateway: MessageEventsGateway = Depends(get_message_events),
):
    """Open a Server-Sent Events stream of inbox notifications."""

    def open_stream():
        stream = gateway.open_stream()
        logger.info(
            "messages.stream_opened", user_id=user.user_id, stream_id=stream.id
        )
        return stream

    return StreamingResponse(
        encode_stream(open_stream),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
