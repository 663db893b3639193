"""
Local notification support for the Mood Journal.

This module provides the dispatcher that turns a mood category into a one-shot
notification, and an in-process notification center that plays the role of the
platform service: it tracks permission, schedules requests with APScheduler and
streams recently delivered notifications to any number of subscribers.
"""

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Protocol

from apscheduler.jobstores.base import ConflictingIdError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from .models import DeliveredNotification, MoodCategory, NotificationRequest

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 1.0
DEFAULT_HISTORY = 100
PERMISSION_OPTIONS = ("alert", "badge", "sound")

TEST_TITLE = "Test notification"
TEST_BODY = (
    "This is a test notification. If you can see it, notifications are working!"
)


class NotificationError(Exception):
    """Raised by a notification center when a request cannot be scheduled."""


class NotificationPermissionError(NotificationError):
    """Raised when notifications have not been authorized."""


class NotificationCenter(Protocol):
    """Platform service that shows local notifications."""

    async def request_authorization(self, options: tuple[str, ...]) -> bool: ...

    async def add(self, request: NotificationRequest) -> None: ...


class LocalNotificationCenter:
    """
    In-process notification center.

    Requests become one-shot date jobs on an ``AsyncIOScheduler`` running on
    the current event loop. The most recent deliveries are kept in order and
    streamed to subscribers using condition signaling, like the entry store
    does.
    """

    def __init__(
        self, grant_permission: bool = True, history: int = DEFAULT_HISTORY
    ) -> None:
        self._grant_permission = grant_permission
        self._authorized = False
        self._scheduler = AsyncIOScheduler()
        self._delivered: deque[DeliveredNotification] = deque(maxlen=history)
        self._condition = asyncio.Condition()
        self._delivery_counter = 0

    @property
    def authorized(self) -> bool:
        return self._authorized

    @property
    def delivered(self) -> list[DeliveredNotification]:
        return list(self._delivered)

    @property
    def pending(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    async def request_authorization(self, options: tuple[str, ...]) -> bool:
        self._authorized = self._grant_permission
        return self._authorized

    async def add(self, request: NotificationRequest) -> None:
        """
        Schedule a request for delivery.

        Raises:
            NotificationPermissionError: If permission has not been granted
            NotificationError: If the identifier is already pending
        """
        if not self._authorized:
            raise NotificationPermissionError("Notifications are not authorized")
        if not self._scheduler.running:
            self._scheduler.start()

        run_date = datetime.now().astimezone() + timedelta(seconds=request.delay)
        try:
            self._scheduler.add_job(
                self._deliver,
                DateTrigger(run_date=run_date),
                id=request.identifier,
                args=[request],
                misfire_grace_time=None,
            )
        except ConflictingIdError as e:
            raise NotificationError(f"Duplicate request {request.identifier}") from e

    async def _deliver(self, request: NotificationRequest) -> None:
        async with self._condition:
            delivered = DeliveredNotification(
                **request.model_dump(), delivered_at=datetime.now()
            )
            self._delivered.append(delivered)
            self._delivery_counter += 1
            self._condition.notify_all()

    async def aclose(self) -> None:
        """Drop undelivered requests and stop the scheduler at shutdown."""
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    @asynccontextmanager
    async def stream(
        self,
    ) -> AsyncGenerator[AsyncGenerator[DeliveredNotification, None], None]:
        """
        Stream notifications delivered after the subscription starts.

        A subscriber that falls more than the history length behind skips
        the notifications that were dropped from the history.

        Yields:
            An async generator of DeliveredNotification objects
        """

        async def notification_generator() -> (
            AsyncGenerator[DeliveredNotification, None]
        ):
            async with self._condition:
                last_seen_counter = self._delivery_counter

            try:
                while True:
                    async with self._condition:
                        await self._condition.wait_for(
                            lambda: self._delivery_counter > last_seen_counter
                        )
                        missed = self._delivery_counter - last_seen_counter
                        fresh = list(self._delivered)[-missed:]
                        last_seen_counter = self._delivery_counter

                    for notification in fresh:
                        yield notification

            except (asyncio.CancelledError, GeneratorExit):
                return

        yield notification_generator()


class NotificationDispatcher:
    """
    Schedules one-shot notifications for mood categories.

    Every call gets a fresh identifier so notifications never replace one
    another. Failures are logged and reported as a False completion signal;
    nothing is raised to the caller.
    """

    def __init__(self, center: NotificationCenter, delay: float = DEFAULT_DELAY):
        self._center = center
        self._delay = delay
        self._permission_requested = False

    @property
    def permission_requested(self) -> bool:
        return self._permission_requested

    async def request_permission(self) -> bool:
        """Ask the platform for alert, badge and sound permission."""
        self._permission_requested = True
        try:
            granted = await self._center.request_authorization(PERMISSION_OPTIONS)
        except Exception:
            logger.warning("Notification permission request failed", exc_info=True)
            return False

        if granted:
            logger.info("Notification permission granted")
        else:
            logger.warning("Notification permission denied")
        return granted

    async def notify(self, category: MoodCategory) -> bool:
        """Schedule the notification for a mood category."""
        return await self._schedule(
            prefix="mood-notification",
            title=category.notification_title,
            body=category.notification_body,
        )

    async def notify_test(self) -> bool:
        """Schedule a fixed diagnostic notification."""
        return await self._schedule(
            prefix="test-notification", title=TEST_TITLE, body=TEST_BODY
        )

    async def _schedule(self, prefix: str, title: str, body: str) -> bool:
        request = NotificationRequest(
            identifier=f"{prefix}-{uuid.uuid4()}",
            title=title,
            body=body,
            delay=self._delay,
            repeats=False,
        )
        try:
            await self._center.add(request)
        except Exception:
            logger.warning(
                "Could not schedule notification %s", request.identifier, exc_info=True
            )
            return False

        logger.info("Scheduled notification %s", request.identifier)
        return True
