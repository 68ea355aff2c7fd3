"""SSE frames — what actually goes down the wire.

Learn: A Server-Sent Events frame is plain text:

    event: data-change
    data: {"type":"created","entity":"attendance",...}

followed by a blank line. The `event:` line is the frame type
("data-change", "heartbeat", ...) and `data:` carries JSON.
"""

import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from atelier.events.types import ChangeEvent, MessageNotification, iso_timestamp, utcnow

DATA_CHANGE = "data-change"
HEARTBEAT = "heartbeat"

# Headers for every text/event-stream response.
# X-Accel-Buffering stops nginx from buffering the stream.
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return iso_timestamp(value)
    return str(value)


def to_json(payload: Any) -> str:
    return json.dumps(payload, default=_json_default, separators=(",", ":"))


@dataclass(frozen=True)
class ServerSentEvent:
    """One outbound frame: a type discriminator plus a JSON data payload."""

    event: str
    data: str
    id: Optional[str] = None

    def encode(self) -> str:
        lines = []
        if self.id is not None:
            lines.append(f"id: {self.id}")
        lines.append(f"event: {self.event}")
        for line in self.data.splitlines() or [""]:
            lines.append(f"data: {line}")
        return "\n".join(lines) + "\n\n"

    def payload(self) -> Any:
        return json.loads(self.data)


def data_change_frame(event: ChangeEvent) -> ServerSentEvent:
    return ServerSentEvent(event=DATA_CHANGE, data=to_json(event.to_wire()))


def message_frame(event: MessageNotification) -> ServerSentEvent:
    return ServerSentEvent(event=event.kind, data=to_json(event.to_wire()))


def heartbeat_frame() -> ServerSentEvent:
    return ServerSentEvent(
        event=HEARTBEAT,
        data=to_json({"type": HEARTBEAT, "timestamp": iso_timestamp(utcnow())}),
    )


def parse_frames(body: str) -> list[ServerSentEvent]:
    """Split an event-stream body back into frames (clients and tests)."""
    frames = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        event, frame_id, data = "message", None, []
        for line in block.splitlines():
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "event":
                event = value
            elif field == "id":
                frame_id = value
            elif field == "data":
                data.append(value)
        frames.append(ServerSentEvent(event=event, data="\n".join(data), id=frame_id))
    return frames


async def encode_stream(
    open_frames: Callable[[], AsyncIterator[ServerSentEvent]],
) -> AsyncIterator[str]:
    """Adapt a frame stream to a StreamingResponse body.

    `open_frames` is called on the first body iteration, not before, so a
    response that is never sent never opens (or leaks) a stream.

    Closing the frame stream in `finally` covers every way the response
    ends: normal completion, client disconnect (task cancellation) and
    errors while writing.
    """
    frames = open_frames()
    try:
        async for frame in frames:
            yield frame.encode()
    finally:
        await frames.aclose()
