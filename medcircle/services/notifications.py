"""
medcircle.services.notifications — Per-User Notification Buffer
================================================================

User-visible outcomes (karma gains, warnings, bans, resets) are
delivered as non-blocking notifications instead of errors.  Each user
gets a bounded ring buffer; clients poll ``GET /api/notifications/me``
which drains it.

No persistence — pending notifications are lost on restart.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


class Variant(enum.StrEnum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True, slots=True)
class Notification:
    """One toast-style message for a user."""

    user_id: str
    title: str
    description: str = ""
    variant: Variant = Variant.DEFAULT
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "variant": self.variant.value,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationCenter:
    """Thread-safe per-user ring buffers backed by :class:`collections.deque`."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._capacity = capacity
        self._queues: dict[str, deque[Notification]] = {}
        self._lock = threading.Lock()

    def push(
        self,
        user_id: str,
        title: str,
        description: str = "",
        *,
        variant: Variant = Variant.DEFAULT,
    ) -> Notification:
        note = Notification(user_id, title, description, variant)
        with self._lock:
            queue = self._queues.get(user_id)
            if queue is None:
                queue = self._queues[user_id] = deque(maxlen=self._capacity)
            queue.append(note)
        logger.info("notify %s: %s (%s)", user_id, title, description)
        return note

    def peek(self, user_id: str) -> list[Notification]:
        with self._lock:
            return list(self._queues.get(user_id, ()))

    def drain(self, user_id: str) -> list[Notification]:
        """Return and clear all pending notifications for *user_id*."""
        with self._lock:
            queue = self._queues.pop(user_id, None)
        return list(queue) if queue else []
