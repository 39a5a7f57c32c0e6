"""
TradeTrack — Notification sink, fan-out and live broadcast.

Every mutation notifies the configured admins plus the acting wallet, and
optionally the contract's role holders. Each recipient's notification is an
independent write: a failure for one recipient is collected and logged,
never rolled back into the others or raised to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from tradetrack.errors import NotFoundError, PartialFanoutFailure
from tradetrack.schemas.logs import now_ms
from tradetrack.schemas.notification import Notification, NotifyPayload
from tradetrack.services.codec import is_missing, normalize_address
from tradetrack.services.store import EQ, Query, RecordStore

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"


# ── Live delivery (SSE) ─────────────────────────────────

class NotificationBroadcaster:
    """Per-user in-memory queues feeding the notification SSE stream."""

    def __init__(self, max_queue: int = 100):
        self._max_queue = max_queue
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, user_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.setdefault(user_id.lower(), set()).add(queue)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(user_id.lower())
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._subscribers.pop(user_id.lower(), None)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id.lower(), ()))

    def publish(self, notification: Notification) -> None:
        for queue in self._subscribers.get(notification.user_id.lower(), ()):
            try:
                queue.put_nowait(notification.to_doc())
            except asyncio.QueueFull:
                logger.warning(f"SSE queue full for {notification.user_id}, dropping {notification.id}")


# ── Sink ────────────────────────────────────────────────

class NotificationSink:
    """
    Stored notifications. After creation only ``read`` may change
    (one way, idempotent); delete is terminal.
    """

    def __init__(self, store: RecordStore, broadcaster: Optional[NotificationBroadcaster] = None):
        self.store = store
        self.broadcaster = broadcaster

    async def create(self, notification: Notification) -> Notification:
        await self.store.create(NOTIFICATIONS, notification.id, notification.to_doc())
        if self.broadcaster:
            self.broadcaster.publish(notification)
        return notification

    async def get_all(self) -> list[Notification]:
        docs = await self.store.query(NOTIFICATIONS, Query(order_by="createdAt", descending=True))
        return [Notification.model_validate(d) for d in docs]

    async def get_by_user(self, user_id: str) -> list[Notification]:
        query = Query(order_by="createdAt", descending=True).where(
            "userId", EQ, normalize_address(user_id),
        )
        docs = await self.store.query(NOTIFICATIONS, query)
        return [Notification.model_validate(d) for d in docs]

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        doc = await self.store.get(NOTIFICATIONS, notification_id)
        return Notification.model_validate(doc) if doc else None

    async def mark_as_read(self, notification_id: str) -> Notification:
        notification = await self.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError(NOTIFICATIONS, notification_id)
        if notification.read:
            return notification
        doc = await self.store.update(
            NOTIFICATIONS, notification_id, {"read": True, "updatedAt": now_ms()},
        )
        return Notification.model_validate(doc)

    async def delete(self, notification_id: str) -> None:
        await self.store.delete(NOTIFICATIONS, notification_id)
        logger.info(f"🗑️  Notification {notification_id} deleted")


# ── Fan-out ─────────────────────────────────────────────

@dataclass
class FanoutResult:
    delivered: list[Notification] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)

    @property
    def recipients(self) -> list[str]:
        return [n.user_id for n in self.delivered] + list(self.failed)

    @property
    def failure(self) -> Optional[PartialFanoutFailure]:
        if not self.failed:
            return None
        return PartialFanoutFailure(self.failed, delivered=len(self.delivered))


def _unique(addresses: Iterable[str]) -> list[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for addr in addresses:
        if is_missing(addr):
            continue
        addr = normalize_address(addr)
        if addr.lower() in seen:
            continue
        seen.add(addr.lower())
        result.append(addr)
    return result


class NotificationFanout:
    def __init__(self, sink: NotificationSink, admins: Iterable[str]):
        self.sink = sink
        self.admins = _unique(admins)

    async def notify_admins_and_executor(self, executor: str, payload: NotifyPayload) -> FanoutResult:
        """Admins plus the executor; an executor who is an admin is notified once."""
        executor = normalize_address(executor)
        return await self._deliver(_unique([*self.admins, executor]), executor, payload)

    async def notify_role_holders(
        self,
        recipients: str | Iterable[str],
        payload: NotifyPayload,
        exclude_executor: Optional[str] = None,
    ) -> FanoutResult:
        """Other parties of a contract; the executor never gets a second copy."""
        if isinstance(recipients, str):
            recipients = [recipients]
        executor = normalize_address(exclude_executor) if not is_missing(exclude_executor) else None
        targets = _unique(recipients)
        if executor:
            targets = [t for t in targets if t.lower() != executor.lower()]
        return await self._deliver(targets, executor, payload)

    async def _deliver(
        self, recipients: list[str], executor: Optional[str], payload: NotifyPayload,
    ) -> FanoutResult:
        notifications = [
            Notification(
                userId=user,
                executorId=executor,
                type=payload.notification_type,
                title=payload.title,
                message=payload.message,
                extraData=payload.extra_data(),
            )
            for user in recipients
        ]
        results = await asyncio.gather(
            *(self.sink.create(n) for n in notifications), return_exceptions=True,
        )

        result = FanoutResult()
        for notification, outcome in zip(notifications, results):
            if isinstance(outcome, BaseException):
                result.failed[notification.user_id] = outcome
            else:
                result.delivered.append(outcome)

        if result.failure:
            logger.warning(f"⚠️  {result.failure}")
        elif result.delivered:
            logger.info(f"🔔 {payload.title} → {len(result.delivered)} recipient(s)")
        return result
