from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, ClassVar

from sqlalchemy import select

from uniwiz.config import get_settings
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, StoreError
from uniwiz.users.base import UserAccount

logger = logging.getLogger(__name__)

BASE_PERMISSIONS: frozenset[str] = frozenset(
    {
        "view_dashboard",
        "update_profile",
        "upload_profile_image",
        "change_password",
        "view_notifications",
        "mark_notifications_read",
    }
)

ACCOUNT_PROFILE_FIELDS: tuple[str, ...] = ("first_name", "last_name", "company_name", "profile_image_url")


class RegisteredUser(UserAccount):
    """Account with a persistent row, a variant profile table and a notification inbox."""

    profile_table: ClassVar[str | None] = None
    profile_fields: ClassVar[tuple[str, ...]] = ()
    extra_permissions: ClassVar[frozenset[str]] = frozenset()

    def __init__(
        self,
        store: DataStore,
        data: Mapping[str, Any] | None = None,
        *,
        profile: Mapping[str, Any] | None = None,
        notifier: Notifier | None = None,
    ):
        super().__init__(store, data, notifier=notifier)
        if profile is None and data is not None:
            profile = data.get("profile_data")
        self.profile: dict[str, Any] = {key: (profile or {}).get(key) for key in self.profile_fields}

    def get_permissions(self) -> frozenset[str]:
        return BASE_PERMISSIONS | self.extra_permissions

    def get_profile_data(self) -> dict[str, Any]:
        return dict(self.profile)

    def load_profile(self) -> dict[str, Any]:
        if not self.profile_table or not self.id:
            return self.get_profile_data()
        table = tables.users.metadata.tables[self.profile_table]
        try:
            row = self.store.select_one(select(table).where(table.c.user_id == self.id)) or {}
        except StoreError:
            logger.exception("Profile load failed user_id=%s", self.id)
            return self.get_profile_data()
        self.profile = {key: row.get(key) for key in self.profile_fields}
        return self.get_profile_data()

    def update_profile(self, fields: Mapping[str, Any]) -> bool:
        account = {key: fields[key] for key in ACCOUNT_PROFILE_FIELDS if fields.get(key) is not None}
        profile = {key: fields[key] or "" for key in self.profile_fields if key in fields}
        try:
            with self.store.transaction():
                if account:
                    self.store.update("users", {**account, "updated_at": utc_now()}, {"id": self.id})
                if profile and self.profile_table:
                    self._upsert_profile(profile)
        except StoreError:
            logger.exception("Profile update failed user_id=%s", self.id)
            return False

        for key, value in account.items():
            setattr(self, key, value)
        self.profile.update(profile)
        return True

    def _upsert_profile(self, values: dict[str, Any]) -> None:
        if self.store.exists(self.profile_table, {"user_id": self.id}):
            self.store.update(self.profile_table, {**values, "updated_at": utc_now()}, {"user_id": self.id})
        else:
            self.store.insert(self.profile_table, {**values, "user_id": self.id})

    def create_notification(self, type_: str, message: str, link: str = "") -> bool:
        return self.notifier.notify(self.id, type_, message, link)

    def get_notifications(self, limit: int | None = None, unread_only: bool = False) -> list[dict[str, Any]]:
        limit = limit or get_settings().notifications_page_size
        return self.notifier.list_for_user(self.id, limit=limit, unread_only=unread_only)

    def mark_notification_read(self, notification_id: int) -> bool:
        return self.notifier.mark_read(notification_id, self.id)

    def mark_all_notifications_read(self) -> int:
        return self.notifier.mark_all_read(self.id)

    def get_unread_notification_count(self) -> int:
        return self.notifier.unread_count(self.id)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["profile_data"] = self.get_profile_data()
        return data

    def _safe_select(self, statement) -> list[dict[str, Any]]:
        try:
            return self.store.select(statement)
        except StoreError:
            logger.exception("Dashboard query failed user_id=%s", self.id)
            return []

    def _safe_scalar(self, statement, default: Any = 0) -> Any:
        try:
            value = self.store.scalar(statement)
        except StoreError:
            logger.exception("Dashboard query failed user_id=%s", self.id)
            return default
        return default if value is None else value
