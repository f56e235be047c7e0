"""
Event sinks for the listener and the sessions.

Every session runs on its own worker thread, so a sink must be safe to call
from several threads at once. Sessions and the listener never touch a
presentation layer directly; they report named events here and whatever is
on the other end decides what to show.
"""

import logging
import queue
from typing import Any, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

# Events that are too chatty for INFO
_DEBUG_EVENTS = {"frame_sent", "frame_received"}
_WARNING_EVENTS = {"accept_failed", "session_aborted", "answer_rejected"}


class EventSink(Protocol):
    """Anything with an emit() method can receive server events."""

    def emit(self, event: str, **fields: Any) -> None:
        ...


class NullSink:
    """Discards every event."""

    def emit(self, event: str, **fields: Any) -> None:
        pass


class LoggingSink:
    """
    Forward events to the logging module.

    logging handlers do their own locking, so this is thread-safe.
    The event name and fields are also attached via ``extra`` for
    structured handlers.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.logger = log or logger

    def emit(self, event: str, **fields: Any) -> None:
        if event in _DEBUG_EVENTS:
            level = logging.DEBUG
        elif event in _WARNING_EVENTS:
            level = logging.WARNING
        else:
            level = logging.INFO

        details = " ".join(f"{k}={v}" for k, v in fields.items())
        self.logger.log(
            level,
            f"{event} {details}".rstrip(),
            extra={"event_type": event, "event_fields": fields},
        )


class QueueSink:
    """
    Put ``(event, fields)`` tuples on a queue.

    A presentation layer drains the queue on its own thread.
    """

    def __init__(self, ev_queue: "Optional[queue.Queue[Tuple[str, dict]]]" = None) -> None:
        self.queue: "queue.Queue[Tuple[str, dict]]" = ev_queue if ev_queue is not None else queue.Queue()

    def emit(self, event: str, **fields: Any) -> None:
        self.queue.put((event, dict(fields)))

    def drain(self) -> list:
        """Return and remove every event queued so far."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events
