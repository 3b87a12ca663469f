"""Single-consumer listener turning upload completions into registry writes.

Notifications pass through a bounded queue. When the queue is full the
configured policy applies: `block` makes the producer wait for space,
`drop_oldest` evicts the oldest pending notification. Failed writes are
logged and discarded; the upload stays stored but is unreachable by name.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from attachments.completion.models import CompletionNotification
from attachments.config.runtime_config import (
    DEFAULT_QUEUE_SIZE,
    QUEUE_POLICIES,
    QUEUE_POLICY_BLOCK,
    QUEUE_POLICY_DROP_OLDEST,
)
from attachments.registry.repository import IdentifierRegistry, RegistryUnavailable

logger = logging.getLogger(__name__)


class CompletionListener:
    def __init__(
        self,
        registry: IdentifierRegistry,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        policy: str = QUEUE_POLICY_BLOCK,
    ) -> None:
        if maxsize <= 0:
            raise ValueError("listener queue must be bounded")
        if policy not in QUEUE_POLICIES:
            raise ValueError(f"unknown queue policy {policy!r}")
        self.registry = registry
        self.policy = policy
        self.queue: asyncio.Queue[CompletionNotification] = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def publish(self, notification: CompletionNotification) -> None:
        if self.policy == QUEUE_POLICY_DROP_OLDEST:
            while self.queue.full():
                evicted = self.queue.get_nowait()
                self.queue.task_done()
                self.dropped += 1
                logger.warning(
                    "completion queue full, dropped oldest upload id=%s metadata=%s",
                    evicted.upload_id,
                    evicted.metadata,
                )
            self.queue.put_nowait(notification)
            return
        await self.queue.put(notification)

    async def handle(self, notification: CompletionNotification) -> None:
        logger.info("upload %s finished", notification.upload_id)
        file_name = notification.file_name()
        if not file_name:
            logger.warning(
                "completed upload id=%s has no filename metadata; no mapping recorded (metadata=%s)",
                notification.upload_id,
                notification.metadata,
            )
            return
        try:
            await self.registry.record(file_name, notification.upload_id)
        except RegistryUnavailable as exc:
            logger.error(
                "unable to record file id map file name=%r upload id=%s: %s",
                file_name,
                notification.upload_id,
                exc,
            )
            return
        logger.info("file id map saved file name=%r upload id=%s", file_name, notification.upload_id)

    async def run(self) -> None:
        while True:
            notification = await self.queue.get()
            try:
                await self.handle(notification)
            except Exception:
                logger.exception("completion handling failed for upload id=%s", notification.upload_id)
            finally:
                self.queue.task_done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run(), name="completion-listener")
        return self._task

    async def join(self) -> None:
        await self.queue.join()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for accepted notifications to be handled; False if the timeout ran out first."""
        if not self.running:
            return self.queue.empty()
        try:
            await asyncio.wait_for(self.queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "completion queue not drained after %.1fs, %d notifications pending",
                timeout,
                self.queue.qsize(),
            )
            return False
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if not self.queue.empty():
            logger.warning("completion listener stopped with %d notifications pending", self.queue.qsize())
