"""Booking lifecycle events and the sink interface they are published to."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class BookingEvent:
    booking_id: str
    class_id: str
    user_id: str
    status: str
    class_name: str | None = None
    instructor_id: str | None = None
    occurred_at: datetime = field(default_factory=_utc_now)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


@dataclass(frozen=True, slots=True)
class BookingCreated(BookingEvent):
    """A booking was inserted as ``confirmed`` or ``waitlisted``."""


@dataclass(frozen=True, slots=True)
class BookingCancelled(BookingEvent):
    """A confirmed or waitlisted booking was cancelled."""


@dataclass(frozen=True, slots=True)
class BookingStatusChanged(BookingEvent):
    """A waitlisted booking was promoted."""


@dataclass(frozen=True, slots=True)
class ClassReminder(BookingEvent):
    starts_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = BookingEvent.to_dict(self)
        data["starts_at"] = self.starts_at.isoformat() if self.starts_at else None
        return data


class EventSink(ABC):
    @abstractmethod
    def publish(self, event: BookingEvent) -> None:
        """Hand the event over without waiting for delivery."""
        raise NotImplementedError

    def close(self) -> None:
        return None


class NullEventSink(EventSink):
    def publish(self, event: BookingEvent) -> None:
        return None


class RecordingEventSink(EventSink):
    """Keeps published events in memory, in publication order."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: list[BookingEvent] = []

    def publish(self, event: BookingEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[BookingEvent]:
        with self._lock:
            return list(self._events)

    def of_kind(self, kind: type[BookingEvent]) -> list[BookingEvent]:
        return [event for event in self.events if type(event) is kind]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


__all__ = [
    "BookingEvent",
    "BookingCreated",
    "BookingCancelled",
    "BookingStatusChanged",
    "ClassReminder",
    "EventSink",
    "NullEventSink",
    "RecordingEventSink",
]
