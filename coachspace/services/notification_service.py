from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

import httpx

from ..config import get_settings
from ..db.models import BookingStatus
from .events import (
    BookingCancelled,
    BookingCreated,
    BookingEvent,
    BookingStatusChanged,
    ClassReminder,
    EventSink,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationPayload:
    user_ids: list[str]
    title: str
    body: str
    type: str
    data: dict[str, str] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "user_ids": self.user_ids,
            "title": self.title,
            "body": self.body,
            "type": self.type,
            "data": self.data,
        }


def _format_start(starts_at: datetime) -> str:
    settings = get_settings()
    if starts_at.tzinfo is None:
        starts_at = starts_at.replace(tzinfo=timezone.utc)
    return starts_at.astimezone(ZoneInfo(settings.timezone)).strftime("%d.%m.%Y %H:%M")


def build_notifications(event: BookingEvent) -> list[NotificationPayload]:
    class_label = event.class_name or "your class"
    student_data = {"classId": event.class_id, "bookingId": event.booking_id}
    instructor_data = {**student_data, "studentId": event.user_id}
    payloads: list[NotificationPayload] = []

    if isinstance(event, ClassReminder):
        when = f" at {_format_start(event.starts_at)}" if event.starts_at else ""
        return [
            NotificationPayload(
                user_ids=[event.user_id],
                title="Class Reminder",
                body=f"{class_label} starts{when}. See you there!",
                type="classReminder",
                data={**student_data, "action": "class_reminder"},
            )
        ]

    if isinstance(event, BookingStatusChanged):
        payloads.append(
            NotificationPayload(
                user_ids=[event.user_id],
                title="You're off the waitlist!",
                body=f"A seat opened up and your booking for {class_label} is now confirmed.",
                type="bookingConfirmed",
                data={**student_data, "action": "waitlist_promoted"},
            )
        )
        instructor_title = "Waitlisted Student Confirmed"
        instructor_body = f"A waitlisted student now has a seat in {class_label}"
        instructor_action = "student_promoted"
    elif isinstance(event, BookingCancelled):
        payloads.append(
            NotificationPayload(
                user_ids=[event.user_id],
                title="Booking Cancelled",
                body=f"Your booking for {class_label} has been cancelled",
                type="bookingCancelled",
                data={**student_data, "action": "booking_cancelled"},
            )
        )
        instructor_title = "Booking Cancelled"
        instructor_body = f"A student has cancelled their booking for {class_label}"
        instructor_action = "student_cancelled"
    elif isinstance(event, BookingCreated) and event.status == BookingStatus.waitlisted.value:
        payloads.append(
            NotificationPayload(
                user_ids=[event.user_id],
                title="Added to Waitlist",
                body=f"You've been added to the waitlist for {class_label}",
                type="bookingWaitlisted",
                data={**student_data, "action": "booking_waitlisted"},
            )
        )
        instructor_title = "New Waitlist Entry"
        instructor_body = f"A student is waitlisted for {class_label}"
        instructor_action = "student_waitlisted"
    elif isinstance(event, BookingCreated):
        payloads.append(
            NotificationPayload(
                user_ids=[event.user_id],
                title="Booking Confirmed!",
                body=f"Your booking for {class_label} has been confirmed!",
                type="bookingConfirmed",
                data={**student_data, "action": "booking_confirmed"},
            )
        )
        instructor_title = "New Student Booked!"
        instructor_body = f"A student has booked your class {class_label}"
        instructor_action = "student_booked"
    else:
        return payloads

    if event.instructor_id:
        payloads.append(
            NotificationPayload(
                user_ids=[event.instructor_id],
                title=instructor_title,
                body=instructor_body,
                type=payloads[0].type,
                data={**instructor_data, "action": instructor_action},
            )
        )
    return payloads


class NotificationDispatcher(EventSink):
    """Delivers booking events to the push gateway from a small worker pool.

    ``publish`` only enqueues work. Delivery failures are logged and never
    reach the code that published the event.
    """

    def __init__(
        self,
        gateway_url: str,
        token: str = "",
        *,
        max_workers: int = 4,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.gateway_url = gateway_url
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notifications"
        )
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.Client(timeout=timeout, headers=headers, transport=transport)

    def publish(self, event: BookingEvent) -> Future | None:
        if not self.gateway_url:
            logger.warning(
                "Push gateway is not configured; skipping booking notification",
                extra={"event_kind": event.kind, "booking_id": event.booking_id},
            )
            return None
        return self._executor.submit(self._deliver, event)

    def _deliver(self, event: BookingEvent) -> None:
        # the future returned by publish is never inspected
        try:
            payloads = build_notifications(event)
        except Exception:
            logger.exception(
                "Failed to build booking notification",
                extra={"event_kind": event.kind, "booking_id": event.booking_id},
            )
            return
        for payload in payloads:
            try:
                response = self._client.post(self.gateway_url, json=payload.to_json())
                response.raise_for_status()
            except Exception:
                logger.exception(
                    "Failed to send booking notification",
                    extra={
                        "event_kind": event.kind,
                        "booking_id": event.booking_id,
                        "user_ids": payload.user_ids,
                    },
                )

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._client.close()


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    return NotificationDispatcher(
        settings.push_gateway_url,
        settings.push_gateway_token,
        max_workers=settings.notification_workers,
        timeout=settings.notification_timeout_seconds,
    )


__all__ = ["NotificationPayload", "NotificationDispatcher", "build_notifications", "get_dispatcher"]
