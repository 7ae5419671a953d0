from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger("timeclock.events")

ATTENDANCE_NEW_TOPIC = "attendance:new"
EMPLOYEES_IMPORTED_TOPIC = "employees:imported"


class EventPublisher(Protocol):
    def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class LoggingEventPublisher:
    """Default publisher: every event becomes one structured log line.

    Publishing is fire-and-forget. Transport errors are logged and dropped so
    a committed attendance record is never reported as failed.
    """

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self._emit(topic, payload)
        except Exception:
            logger.exception("event_publish_failed", extra={"topic": topic})

    def _emit(self, topic: str, payload: dict[str, Any]) -> None:
        logger.info("event_published", extra={"topic": topic, "payload": payload})


class RecordingEventPublisher:
    """Keeps published events in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.events.append((topic, dict(payload)))

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.events]


_default_publisher = LoggingEventPublisher()


def get_event_publisher() -> EventPublisher:
    return _default_publisher


def safe_publish(publisher: EventPublisher, topic: str, payload: dict[str, Any]) -> None:
    try:
        publisher.publish(topic, payload)
    except Exception:
        logger.exception("event_publish_failed", extra={"topic": topic})
