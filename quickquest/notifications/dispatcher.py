"""
Background delivery of notifications.

Sends are detached asyncio tasks: the request that triggered them does not
wait, and a failure is logged from the task's done-callback instead of
reaching the caller. ``deliver_*`` methods await instead, for flows where
the caller must know delivery failed.
"""

import asyncio
from functools import partial
from typing import Awaitable, Optional, Set

from quickquest.logging_config import get_logger
from quickquest.notifications.notifier import NotificationError, Notifier

logger = get_logger(__name__)

SEND_TIMEOUT = 30.0


class NotificationDispatcher:
    """Owns in-flight notification tasks so they are neither lost nor leaked."""

    def __init__(self, notifier: Notifier, timeout: float = SEND_TIMEOUT):
        self.notifier = notifier
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, send: Awaitable[None], kind: str) -> asyncio.Task:
        """Schedule ``send`` without awaiting it."""
        task = asyncio.create_task(asyncio.wait_for(send, self.timeout))
        self._tasks.add(task)
        task.add_done_callback(partial(self._finished, kind))
        return task

    def _finished(self, kind: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Email send cancelled", extra={"kind": kind})
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Failed to send %s email",
                kind,
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"kind": kind},
            )

    def verification(self, email: str, token: str, username: str) -> asyncio.Task:
        return self.dispatch(self.notifier.send_verification(email, token, username), "verification")

    def password_reset(self, email: str, token: str, username: str) -> asyncio.Task:
        return self.dispatch(self.notifier.send_password_reset(email, token, username), "password_reset")

    def welcome(self, email: str, username: str) -> asyncio.Task:
        return self.dispatch(self.notifier.send_welcome(email, username), "welcome")

    async def deliver_password_reset(self, email: str, token: str, username: str) -> None:
        """
        Send a reset email and wait for the outcome.

        Raises:
            NotificationError: the provider failed or did not answer in time
        """
        try:
            await asyncio.wait_for(
                self.notifier.send_password_reset(email, token, username),
                self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise NotificationError("Email send timed out") from e

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight sends, e.g. at shutdown."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("Abandoning %d unsent emails", len(pending))
            for task in pending:
                task.cancel()
