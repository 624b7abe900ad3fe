from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select

from uniwiz.core.entity import Entity
from uniwiz.core.job import Job, job_listing_query
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_datetime, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, IntegrityViolation, StoreError
from uniwiz.types import ToggleResult

logger = logging.getLogger(__name__)


class Wishlist(Entity):
    table = tables.wishlist
    fields = ("id", "student_id", "job_id", "created_at")

    def coerce(self, name: str, value: Any) -> Any:
        if name == "created_at":
            return as_datetime(value)
        return value

    @staticmethod
    def validate(data: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        if not data.get("student_id"):
            errors.append("Student ID is required")
        if not data.get("job_id"):
            errors.append("Job ID is required")
        return errors

    @classmethod
    def find_by_student_and_job(cls, store: DataStore, student_id: int, job_id: int) -> Wishlist | None:
        w = cls.table
        try:
            row = store.select_one(select(w).where(w.c.student_id == student_id, w.c.job_id == job_id))
        except StoreError:
            logger.exception("Wishlist lookup failed student_id=%s job_id=%s", student_id, job_id)
            return None
        return cls(store, row) if row else None

    @classmethod
    def is_job_in_wishlist(cls, store: DataStore, student_id: int, job_id: int) -> bool:
        try:
            return store.exists("wishlist", {"student_id": student_id, "job_id": job_id})
        except StoreError:
            logger.exception("Wishlist lookup failed student_id=%s job_id=%s", student_id, job_id)
            return False

    @classmethod
    def add_to_wishlist(
        cls, store: DataStore, student_id: int, job_id: int, *, notifier: Notifier | None = None
    ) -> Wishlist | str:
        errors = cls.validate({"student_id": student_id, "job_id": job_id})
        if errors:
            return ", ".join(errors)
        try:
            if store.exists("wishlist", {"student_id": student_id, "job_id": job_id}):
                return "Job is already in your wishlist"
            if Job.find_active(store, job_id) is None:
                return "Job not found or no longer active"
            if not store.exists("users", {"id": student_id, "role": "student"}):
                return "Student not found"
            entry_id = store.insert("wishlist", {"student_id": student_id, "job_id": job_id, "created_at": utc_now()})
        except IntegrityViolation:
            return "Job is already in your wishlist"
        except StoreError:
            logger.exception("Wishlist add failed student_id=%s job_id=%s", student_id, job_id)
            return "An error occurred while updating your wishlist"
        return cls.find_by_id(store, entry_id, notifier=notifier) or "An error occurred while updating your wishlist"

    @classmethod
    def remove_from_wishlist(cls, store: DataStore, student_id: int, job_id: int) -> bool | str:
        try:
            removed = store.delete("wishlist", {"student_id": student_id, "job_id": job_id})
        except StoreError:
            logger.exception("Wishlist remove failed student_id=%s job_id=%s", student_id, job_id)
            return "An error occurred while updating your wishlist"
        if removed == 0:
            return "Job is not in your wishlist"
        return True

    @classmethod
    def toggle_wishlist(cls, store: DataStore, student_id: int, job_id: int) -> ToggleResult:
        if cls.is_job_in_wishlist(store, student_id, job_id):
            result = cls.remove_from_wishlist(store, student_id, job_id)
            if result is True:
                return ToggleResult(action="removed", success=True, message="Removed from wishlist")
            return ToggleResult(action="removed", success=False, message=result)

        added = cls.add_to_wishlist(store, student_id, job_id)
        if isinstance(added, str):
            return ToggleResult(action="added", success=False, message=added)
        return ToggleResult(action="added", success=True, message="Added to wishlist")

    @staticmethod
    def _listing_query():
        w, j, u, c = tables.wishlist, tables.jobs, tables.users, tables.job_categories
        return select(
            w.c.id.label("wishlist_id"),
            w.c.student_id,
            w.c.created_at.label("added_at"),
            j,
            u.c.company_name,
            c.c.name.label("category_name"),
        ).select_from(
            w.join(j, j.c.id == w.c.job_id)
            .join(u, u.c.id == j.c.publisher_id)
            .outerjoin(c, c.c.id == j.c.category_id)
        )

    @classmethod
    def get_by_student(
        cls, store: DataStore, student_id: int, *, limit: int | None = None, offset: int = 0
    ) -> list[dict[str, Any]]:
        w = tables.wishlist
        statement = cls._listing_query().where(w.c.student_id == student_id).order_by(w.c.created_at.desc(), w.c.id.desc())
        if limit:
            statement = statement.limit(limit)
        if offset:
            statement = statement.offset(offset)
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to load wishlist student_id=%s", student_id)
            return []

    @classmethod
    def get_all(cls, store: DataStore, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = filters or {}
        w, j = tables.wishlist, tables.jobs
        statement = cls._listing_query()
        if filters.get("student_id"):
            statement = statement.where(w.c.student_id == filters["student_id"])
        if filters.get("job_id"):
            statement = statement.where(w.c.job_id == filters["job_id"])
        if filters.get("job_status"):
            statement = statement.where(j.c.status == filters["job_status"])
        statement = statement.order_by(w.c.created_at.desc(), w.c.id.desc())
        if filters.get("limit"):
            statement = statement.limit(int(filters["limit"]))
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to list wishlist entries")
            return []

    @classmethod
    def get_student_stats(cls, store: DataStore, student_id: int) -> dict[str, Any]:
        w, j, c = tables.wishlist, tables.jobs, tables.job_categories
        total = func.count(w.c.id).label("total")
        try:
            status_rows = store.select(
                select(j.c.status, total)
                .select_from(w.join(j, j.c.id == w.c.job_id))
                .where(w.c.student_id == student_id)
                .group_by(j.c.status)
            )
            by_category = store.select(
                select(c.c.name.label("category_name"), total)
                .select_from(w.join(j, j.c.id == w.c.job_id).join(c, c.c.id == j.c.category_id))
                .where(w.c.student_id == student_id)
                .group_by(c.c.id, c.c.name)
                .order_by(total.desc())
                .limit(5)
            )
        except StoreError:
            logger.exception("Wishlist stats query failed student_id=%s", student_id)
            status_rows, by_category = [], []
        by_status = {row["status"]: int(row["total"]) for row in status_rows}
        return {"total": sum(by_status.values()), "by_status": by_status, "by_category": by_category}

    @classmethod
    def get_most_wishlisted_jobs(cls, store: DataStore, limit: int = 10) -> list[dict[str, Any]]:
        w, j = tables.wishlist, tables.jobs
        total = func.count(w.c.id).label("wishlist_count")
        statement = (
            select(j.c.id, j.c.title, j.c.publisher_id, total)
            .select_from(w.join(j, j.c.id == w.c.job_id))
            .where(j.c.status == "active")
            .group_by(j.c.id, j.c.title, j.c.publisher_id)
            .order_by(total.desc(), j.c.id)
            .limit(limit)
        )
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to rank wishlisted jobs")
            return []

    @classmethod
    def get_recommended_from_wishlist(cls, store: DataStore, student_id: int, limit: int = 10) -> list[dict[str, Any]]:
        """Active jobs sharing a category with the student's wishlist, excluding jobs already saved or applied to."""
        w, j, a = tables.wishlist, tables.jobs, tables.job_applications
        wished_categories = (
            select(j.c.category_id)
            .select_from(w.join(j, j.c.id == w.c.job_id))
            .where(w.c.student_id == student_id, j.c.category_id.is_not(None))
        )
        wished_jobs = select(w.c.job_id).where(w.c.student_id == student_id)
        applied_jobs = select(a.c.job_id).where(a.c.student_id == student_id)
        statement = (
            job_listing_query()
            .where(
                j.c.status == "active",
                j.c.category_id.in_(wished_categories),
                j.c.id.not_in(wished_jobs),
                j.c.id.not_in(applied_jobs),
            )
            .order_by(j.c.created_at.desc(), j.c.id.desc())
            .limit(limit)
        )
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Wishlist recommendations failed student_id=%s", student_id)
            return []

    @classmethod
    def cleanup(cls, store: DataStore) -> int:
        """Drop wishlist rows whose job is gone or no longer active; returns the count removed."""
        w, j = tables.wishlist, tables.jobs
        try:
            stale = store.select(
                select(w.c.id)
                .select_from(w.outerjoin(j, j.c.id == w.c.job_id))
                .where((j.c.id.is_(None)) | (j.c.status != "active"))
            )
            if not stale:
                return 0
            return store.delete("wishlist", {"id": [row["id"] for row in stale]})
        except StoreError:
            logger.exception("Wishlist cleanup failed")
            return 0

    def remove(self) -> bool | str:
        return self.remove_from_wishlist(self.store, self.student_id, self.job_id)
