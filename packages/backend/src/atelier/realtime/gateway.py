"""SSE gateway — managed long-lived streams on top of an EventBus.

Learn: One browser connection = one SseStream. Each stream runs two
producer tasks that feed a single outbox queue:

1. Event pump — reads the stream's bus subscription, turns each event
   into a frame
2. Heartbeat — every `heartbeat_interval` seconds pushes a heartbeat
   frame so nginx/proxies don't cut the idle connection. Skipped while
   the outbox is non-empty, so an idle reader never accumulates them

The HTTP response is the only consumer of the outbox. When the stream
closes for any reason (client gone, shutdown, error) both producers are
cancelled, the bus subscription is dropped and the connection counters
are updated, exactly once.

The gateway also keeps connection diagnostics (active/peak/opened/closed)
and, while at least one stream is open, logs them periodically and warns
when the active count goes above `warning_threshold`.

Stream lifecycle:

  opening → active → closed

`opening` only exists inside open_stream(); `closed` is terminal.
"""

import asyncio
import itertools
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar

import structlog

from atelier.config import settings
from atelier.realtime.bus import BusSubscription, EventBus
from atelier.realtime.frames import ServerSentEvent, heartbeat_frame

logger = structlog.get_logger()

EventT = TypeVar("EventT")

Transformer = Callable[[EventT], ServerSentEvent]

# Tells the consumer the stream is over
_CLOSED = object()


@dataclass
class ConnectionStats:
    """Connection counters for one gateway. Reset only on restart."""

    active: int = 0
    peak: int = 0
    total_opened: int = 0
    total_closed: int = 0

    def record_open(self) -> None:
        self.active += 1
        self.total_opened += 1
        self.peak = max(self.peak, self.active)

    def record_close(self) -> None:
        self.active -= 1
        self.total_closed += 1

    def snapshot(self) -> "ConnectionStats":
        return replace(self)

    def as_dict(self) -> dict[str, int]:
        return {
            "activeConnections": self.active,
            "peakConnections": self.peak,
            "totalConnectionsOpened": self.total_opened,
            "totalConnectionsClosed": self.total_closed,
        }

    def log_fields(self) -> dict[str, int]:
        return {
            "active": self.active,
            "peak": self.peak,
            "opened": self.total_opened,
            "closed": self.total_closed,
        }


class SseStream(Generic[EventT]):
    """One client's outbound frame stream.

    Async-iterate it for frames. close() / aclose() may be called from
    anywhere, any number of times; cleanup runs once.
    """

    def __init__(
        self,
        gateway: "SseGateway[EventT]",
        stream_id: int,
        subscription: BusSubscription[EventT],
        transformer: Transformer,
        heartbeat_interval: float,
        initial: Iterable[ServerSentEvent] = (),
    ):
        self.id = stream_id
        self.topics = subscription.topics
        self.opened_at = datetime.now(timezone.utc)
        self._gateway = gateway
        self._subscription = subscription
        self._transformer = transformer
        self._outbox: asyncio.Queue = asyncio.Queue()
        for frame in initial:
            self._outbox.put_nowait(frame)
        self._closed = False
        self._finished = False
        self._tasks = (
            asyncio.create_task(self._pump_events(), name=f"sse-{stream_id}-events"),
            asyncio.create_task(
                self._pump_heartbeats(heartbeat_interval),
                name=f"sse-{stream_id}-heartbeat",
            ),
        )

    @property
    def closed(self) -> bool:
        return self._closed

    async def _pump_events(self) -> None:
        try:
            async for event in self._subscription:
                self._outbox.put_nowait(self._transformer(event))
        except Exception as e:
            logger.warning(
                "sse.stream_error",
                gateway=self._gateway.name,
                stream_id=self.id,
                error=str(e),
            )
        # Subscription ended (bus closed) or failed: end the stream
        self._outbox.put_nowait(_CLOSED)

    async def _pump_heartbeats(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            # Pending frames already keep the connection alive; a stalled
            # consumer must not pile up heartbeats
            if self._outbox.empty():
                self._outbox.put_nowait(heartbeat_frame())

    def __aiter__(self) -> "SseStream[EventT]":
        return self

    async def __anext__(self) -> ServerSentEvent:
        # Frames queued before close() still go out, then iteration ends
        if self._finished:
            raise StopAsyncIteration
        frame = await self._outbox.get()
        if frame is _CLOSED:
            self._finished = True
            self.close()
            raise StopAsyncIteration
        return frame

    def close(self) -> None:
        """Tear the stream down. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        self._subscription.cancel()
        self._outbox.put_nowait(_CLOSED)
        self._gateway._stream_closed(self)

    async def aclose(self) -> None:
        """close(), then wait for both producer tasks to finish."""
        self.close()
        await asyncio.gather(*self._tasks, return_exceptions=True)


class SseGateway(Generic[EventT]):
    """Base class for an SSE channel backed by one EventBus.

    Subclasses add the typed emit helpers and decide how events become
    frames (see DataEventsGateway, MessageEventsGateway).
    """

    def __init__(
        self,
        bus: Optional[EventBus[EventT]] = None,
        *,
        name: Optional[str] = None,
        heartbeat_interval: Optional[float] = None,
        diagnostic_interval: Optional[float] = None,
        warning_threshold: Optional[int] = None,
    ):
        self.name = name or type(self).__name__
        self.bus: EventBus[EventT] = bus if bus is not None else EventBus(name=self.name)
        self.heartbeat_interval = (
            heartbeat_interval
            if heartbeat_interval is not None
            else settings.sse_heartbeat_interval_seconds
        )
        self.diagnostic_interval = (
            diagnostic_interval
            if diagnostic_interval is not None
            else settings.sse_diagnostic_interval_seconds
        )
        self.warning_threshold = (
            warning_threshold
            if warning_threshold is not None
            else settings.sse_warning_threshold
        )
        self._stats = ConnectionStats()
        self._streams: dict[int, SseStream[EventT]] = {}
        self._stream_ids = itertools.count(1)
        self._diagnostic_task: Optional[asyncio.Task] = None
        self._shut_down = False

    # ─── Diagnostics ─────────────────────────────────────

    @property
    def active_connections(self) -> int:
        return self._stats.active

    def get_diagnostics(self) -> ConnectionStats:
        """Copy of the connection counters."""
        return self._stats.snapshot()

    # ─── Publishing ──────────────────────────────────────

    def emit(self, event: EventT) -> None:
        self.bus.publish(event)

    # ─── Streams ─────────────────────────────────────────

    def _open_stream(
        self,
        subscription: BusSubscription[EventT],
        transformer: Transformer,
        initial: Iterable[ServerSentEvent] = (),
    ) -> SseStream[EventT]:
        """Wrap a bus subscription in a managed stream with heartbeats.

        Must be called from a running event loop.
        """
        stream = SseStream(
            self,
            next(self._stream_ids),
            subscription,
            transformer,
            self.heartbeat_interval,
            initial,
        )
        self._streams[stream.id] = stream
        self._stats.record_open()

        if self._stats.active == 1:
            self._start_diagnostics()

        logger.info(
            "sse.connection_opened",
            gateway=self.name,
            stream_id=stream.id,
            **self._stats.log_fields(),
        )
        if self._stats.active > self.warning_threshold:
            logger.warning(
                "sse.high_connection_count",
                gateway=self.name,
                active=self._stats.active,
                threshold=self.warning_threshold,
            )
        return stream

    def _stream_closed(self, stream: SseStream[EventT]) -> None:
        # Called once per stream, from SseStream.close()
        self._streams.pop(stream.id, None)
        self._stats.record_close()
        logger.info(
            "sse.connection_closed",
            gateway=self.name,
            stream_id=stream.id,
            **self._stats.log_fields(),
        )
        if self._stats.active == 0:
            self._stop_diagnostics()

    def _start_diagnostics(self) -> None:
        if self._diagnostic_task is not None:
            return
        self._diagnostic_task = asyncio.create_task(
            self._log_diagnostics(), name=f"{self.name}-diagnostics"
        )

    def _stop_diagnostics(self) -> None:
        if self._diagnostic_task is None:
            return
        self._diagnostic_task.cancel()
        self._diagnostic_task = None

    async def _log_diagnostics(self) -> None:
        while True:
            await asyncio.sleep(self.diagnostic_interval)
            logger.info("sse.stats", gateway=self.name, **self._stats.log_fields())
            if self._stats.active > self.warning_threshold:
                logger.warning(
                    "sse.connection_count_above_threshold",
                    gateway=self.name,
                    active=self._stats.active,
                    threshold=self.warning_threshold,
                )

    # ─── Shutdown ────────────────────────────────────────

    def shutdown(self) -> None:
        """Close every open stream and the bus. Later calls are no-ops."""
        if self._shut_down:
            logger.debug("sse.shutdown_repeated", gateway=self.name)
            return
        self._shut_down = True

        logger.info(
            "sse.shutting_down", gateway=self.name, **self._stats.log_fields()
        )
        self._stop_diagnostics()

        for stream in list(self._streams.values()):
            try:
                stream.close()
            except Exception as e:
                logger.warning(
                    "sse.stream_close_failed",
                    gateway=self.name,
                    stream_id=stream.id,
                    error=str(e),
                )

        self.bus.close()
        logger.info("sse.shutdown_complete", gateway=self.name)
