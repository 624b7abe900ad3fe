from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy import select

from uniwiz.core.notifications import Notifier
from uniwiz.db import tables
from uniwiz.db.store import DataStore, StoreError
from uniwiz.users.admin import Admin
from uniwiz.users.base import UserAccount
from uniwiz.users.publisher import Publisher
from uniwiz.users.registered import RegisteredUser
from uniwiz.users.student import Student
from uniwiz.users.visitor import Visitor

logger = logging.getLogger(__name__)

USER_VARIANTS: dict[str, Callable[..., UserAccount]] = {
    "visitor": Visitor,
    "student": Student,
    "publisher": Publisher,
    "admin": Admin,
}


class UnknownRoleError(ValueError):
    pass


def variant_for(role: str | None) -> Callable[..., UserAccount]:
    factory = USER_VARIANTS.get(role or "")
    if factory is None:
        raise UnknownRoleError(f"unknown user role '{role}'")
    return factory


def load_user(store: DataStore, data: Mapping[str, Any], *, notifier: Notifier | None = None) -> UserAccount:
    """Build the variant named by ``data['role']``, loading its profile row when it has one."""
    user = variant_for(data.get("role"))(store, data, notifier=notifier)
    if isinstance(user, RegisteredUser) and "profile_data" not in data:
        user.load_profile()
    return user


def anonymous_visitor(store: DataStore) -> Visitor:
    return Visitor(store)


def find_user_by_id(store: DataStore, user_id: int, *, notifier: Notifier | None = None) -> UserAccount | None:
    u = tables.users
    try:
        row = store.select_one(select(u).where(u.c.id == user_id))
    except StoreError:
        logger.exception("User lookup failed id=%s", user_id)
        return None
    return load_user(store, row, notifier=notifier) if row else None


def find_user_by_email(store: DataStore, email: str, *, notifier: Notifier | None = None) -> UserAccount | None:
    u = tables.users
    try:
        row = store.select_one(select(u).where(u.c.email == email.strip().lower()))
    except StoreError:
        logger.exception("User lookup failed email=%s", email)
        return None
    return load_user(store, row, notifier=notifier) if row else None


def list_users(store: DataStore, filters: Mapping[str, Any] | None = None) -> list[UserAccount]:
    filters = filters or {}
    u = tables.users
    statement = select(u)
    for key in ("role", "status", "is_verified"):
        if filters.get(key) not in (None, ""):
            statement = statement.where(u.c[key] == filters[key])
    statement = statement.order_by(u.c.created_at.desc(), u.c.id.desc())
    if filters.get("limit"):
        statement = statement.limit(int(filters["limit"]))
    try:
        rows = store.select(statement)
    except StoreError:
        logger.exception("Failed to list users")
        return []
    return [load_user(store, row) for row in rows]


def register_user(
    store: DataStore,
    data: Mapping[str, Any],
    *,
    profile: Mapping[str, Any] | None = None,
    notifier: Notifier | None = None,
) -> UserAccount | str:
    """Persist a new student, publisher or admin account together with its profile row."""
    role = data.get("role")
    if role == "visitor":
        return "Visitors cannot be registered"
    user = variant_for(role)(store, {**data, "email": str(data.get("email") or "").strip().lower(), "id": None}, notifier=notifier)
    result = user.save()
    if result is not True:
        return result
    if profile and isinstance(user, RegisteredUser) and not user.update_profile(profile):
        return "Account created but the profile could not be saved"
    return user
