from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select

from uniwiz.core.values import utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, StoreError
from uniwiz.types import NotificationPayload

logger = logging.getLogger(__name__)


class Notifier:
    """Synchronous notification port.

    Entities call ``notify`` after their primary write has succeeded. A failed
    notification insert is logged and reported as ``False``; it never undoes
    the operation that triggered it.
    """

    def __init__(self, store: DataStore):
        self.store = store

    def notify(self, user_id: int | None, type_: str, message: str, link: str = "") -> bool:
        if not user_id:
            return False
        try:
            payload = NotificationPayload(user_id=user_id, type=type_, message=message, link=link or "")
        except ValidationError:
            logger.exception("Rejected notification user_id=%s type=%r", user_id, type_)
            return False
        return self.deliver(payload)

    def deliver(self, payload: NotificationPayload) -> bool:
        try:
            self.store.insert(
                "notifications",
                {
                    "user_id": payload.user_id,
                    "type": payload.type,
                    "message": payload.message,
                    "link": payload.link,
                    "is_read": False,
                    "created_at": utc_now(),
                },
            )
        except StoreError:
            logger.exception("Notification insert failed user_id=%s type=%s", payload.user_id, payload.type)
            return False
        return True

    def notify_many(self, user_ids: Iterable[int], type_: str, message: str, link: str = "") -> int:
        return sum(1 for user_id in user_ids if self.notify(user_id, type_, message, link))

    def notify_role(self, role: str, type_: str, message: str, link: str = "") -> int:
        try:
            rows = self.store.select(select(tables.users.c.id).where(tables.users.c.role == role))
        except StoreError:
            logger.exception("Failed to resolve notification recipients role=%s", role)
            return 0
        return self.notify_many((row["id"] for row in rows), type_, message, link)

    def list_for_user(self, user_id: int, *, limit: int = 20, unread_only: bool = False) -> list[dict[str, Any]]:
        n = tables.notifications
        statement = select(n).where(n.c.user_id == user_id)
        if unread_only:
            statement = statement.where(n.c.is_read.is_(False))
        statement = statement.order_by(n.c.created_at.desc(), n.c.id.desc()).limit(limit)
        try:
            return self.store.select(statement)
        except StoreError:
            logger.exception("Failed to load notifications user_id=%s", user_id)
            return []

    def mark_read(self, notification_id: int, user_id: int) -> bool:
        try:
            updated = self.store.update(
                "notifications",
                {"is_read": True},
                {"id": notification_id, "user_id": user_id},
            )
        except StoreError:
            logger.exception("Failed to mark notification read id=%s", notification_id)
            return False
        return updated > 0

    def mark_all_read(self, user_id: int) -> int:
        try:
            return self.store.update("notifications", {"is_read": True}, {"user_id": user_id, "is_read": False})
        except StoreError:
            logger.exception("Failed to mark notifications read user_id=%s", user_id)
            return 0

    def unread_count(self, user_id: int) -> int:
        try:
            return self.store.count("notifications", {"user_id": user_id, "is_read": False})
        except StoreError:
            logger.exception("Failed to count unread notifications user_id=%s", user_id)
            return 0
