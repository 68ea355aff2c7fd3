"""Messaging channel — manager inbox counter and new-message pings.

Learn: When a client writes to the center's Telegram bot, the messaging
service stores the message, then calls emit_new_message() and
emit_unread_count() so every open admin tab can bump its badge and play
a sound.

The gateway remembers the last unread count it broadcast and sends it
as the first frame of every new stream, so a freshly opened tab shows
the right badge without waiting for the next inbound message.
"""

from datetime import datetime
from typing import Optional

import structlog
from pydantic import ValidationError

from atelier.events.types import MessageNotification, NewMessage, UnreadCount
from atelier.realtime.frames import message_frame
from atelier.realtime.gateway import SseGateway, SseStream

logger = structlog.get_logger()


class MessageEventsGateway(SseGateway[MessageNotification]):
    """SSE channel for inbox notifications."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_unread: Optional[UnreadCount] = None

    @property
    def last_unread_count(self) -> Optional[int]:
        return self._last_unread.count if self._last_unread else None

    def open_stream(self) -> SseStream[MessageNotification]:
        subscription = self.bus.subscribe()
        initial = [message_frame(self._last_unread)] if self._last_unread else []
        return self._open_stream(subscription, message_frame, initial=initial)

    def emit_unread_count(self, count: int) -> None:
        try:
            event = UnreadCount(count=count)
        except ValidationError as e:
            logger.warning("messages.invalid_event", kind="unread-count", error=str(e))
            return
        self._last_unread = event
        self.emit(event)

    def emit_new_message(self, conversation_id: str, created_at: datetime) -> None:
        try:
            event = NewMessage(conversation_id=conversation_id, created_at=created_at)
        except ValidationError as e:
            logger.warning("messages.invalid_event", kind="new-message", error=str(e))
            return
        self.emit(event)
