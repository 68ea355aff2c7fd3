"""Data-change stream API.

Learn: The browser opens

    GET /api/v1/data-events/stream?token=<jwt>&entities=attendance,invoice

with EventSource and keeps it open. Every change to a matching entity
arrives as a `data-change` frame; a `heartbeat` frame arrives every
30 seconds. Leave `entities` out to receive every kind.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from atelier.api.deps import get_data_events
from atelier.auth.dependencies import CurrentUser, get_current_user
from atelier.realtime.data_events import (
    DataEventsGateway,
    UnknownEntityError,
    parse_entities,
)
from atelier.realtime.frames import SSE_HEADERS, encode_stream

logger = structlog.get_logger()
router = APIRouter(prefix="/data-events")


@router.get("/stream")
async def stream_data_events(
    entities: Optional[str] = Query(
        None, description="Comma-separated entity kinds, e.g. attendance,invoice"
    ),
    user: CurrentUser = Depends(get_current_user),
    gateway: DataEventsGateway = Depends(get_data_events),
):
    """Open a Server-Sent Events stream of data changes."""
    try:
        kinds = parse_entities(entities)
    except UnknownEntityError as e:
        raise HTTPException(status_code=422, detail=str(e))

    def open_stream():
        stream = gateway.open_stream(kinds)
        logger.info(
            "data_events.stream_opened",
            user_id=user.user_id,
            stream_id=stream.id,
            entities=sorted(kind.value for kind in kinds) if kinds else "all",
        )
        return stream

    return StreamingResponse(
        encode_stream(open_stream),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/stats")
async def data_events_stats(
    gateway: DataEventsGateway = Depends(get_data_events),
):
    """Connection counters for the data-change stream."""
    return gateway.get_diagnostics().as_dict()
