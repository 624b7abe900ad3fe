from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, ClassVar
from urllib.parse import quote_plus

from uniwiz.core.entity import Entity
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_bool, as_datetime, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, IntegrityViolation, StoreError

logger = logging.getLogger(__name__)

USER_FIELDS: tuple[str, ...] = (
    "id",
    "email",
    "first_name",
    "last_name",
    "company_name",
    "role",
    "profile_image_url",
    "status",
    "is_verified",
    "email_verified_at",
    "created_at",
    "updated_at",
)


class UserAccount(Entity):
    """Common state of every account variant.

    Variants differ only in their capability set, profile data and dashboard
    aggregates; the role column decides which variant a row becomes.
    """

    table = tables.users
    fields = USER_FIELDS
    role: ClassVar[str]
    defaults = {"first_name": "", "last_name": "", "status": "active", "is_verified": False}

    def __init__(
        self,
        store: DataStore,
        data: Mapping[str, Any] | None = None,
        *,
        notifier: Notifier | None = None,
    ):
        super().__init__(store, data, notifier=notifier)
        self.role = type(self).role

    def coerce(self, name: str, value: Any) -> Any:
        if name == "is_verified":
            return as_bool(value)
        if name in {"email_verified_at", "created_at", "updated_at"}:
            return as_datetime(value)
        return value

    def get_permissions(self) -> frozenset[str]:
        raise NotImplementedError

    def can_access(self, capability: str) -> bool:
        return capability in self.get_permissions()

    def get_profile_data(self) -> dict[str, Any]:
        raise NotImplementedError

    def get_dashboard_stats(self) -> dict[str, Any]:
        raise NotImplementedError

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def display_name(self) -> str:
        return self.company_name or self.full_name

    @property
    def avatar_url(self) -> str:
        if self.profile_image_url:
            return self.profile_image_url
        return f"https://ui-avatars.com/api/?name={quote_plus(self.full_name or self.email or 'User')}&background=random"

    def is_blocked(self) -> bool:
        return self.status == "blocked"

    def is_active(self) -> bool:
        return self.status == "active"

    def save(self) -> bool | str:
        values = {
            "email": self.email,
            "first_name": self.first_name or "",
            "last_name": self.last_name or "",
            "company_name": self.company_name,
            "role": self.role,
            "profile_image_url": self.profile_image_url,
            "status": self.status,
            "is_verified": self.is_verified,
            "email_verified_at": self.email_verified_at,
        }
        if not self.email:
            return "Email is required"
        try:
            if self.id:
                self.store.update("users", {**values, "updated_at": utc_now()}, {"id": self.id})
            else:
                self.id = self.store.insert("users", values)
        except IntegrityViolation:
            return "Email is already registered"
        except StoreError:
            logger.exception("User save failed email=%s", self.email)
            return "An error occurred while saving the account"
        self.refresh()
        return True

    def delete(self) -> bool:
        try:
            self.store.delete("users", {"id": self.id})
        except StoreError:
            logger.exception("User delete failed id=%s", self.id)
            return False
        return True

    def verify_email(self) -> bool:
        now = utc_now()
        try:
            self.store.update(
                "users",
                {"is_verified": True, "email_verified_at": now, "updated_at": now},
                {"id": self.id},
            )
        except StoreError:
            logger.exception("Email verification failed id=%s", self.id)
            return False
        self.is_verified = True
        self.email_verified_at = now
        return True

    def set_blocked(self, blocked: bool) -> bool:
        status = "blocked" if blocked else "active"
        try:
            self.store.update("users", {"status": status, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Status change failed id=%s", self.id)
            return False
        self.status = status
        return True

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["full_name"] = self.full_name
        return data
