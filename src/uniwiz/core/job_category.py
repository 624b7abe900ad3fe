from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from sqlalchemy import and_, case, func, select

from uniwiz.core.entity import Entity
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_bool, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, IntegrityViolation, StoreError

logger = logging.getLogger(__name__)

_AMOUNT_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")


def parse_payment_range(value: str | None) -> tuple[float, float] | None:
    """Extract (low, high) from free text such as "1,000 - 2,500 LKR"."""
    numbers = [float(match.replace(",", "")) for match in _AMOUNT_PATTERN.findall(value or "")]
    if not numbers:
        return None
    return min(numbers), max(numbers)


class JobCategory(Entity):
    table = tables.job_categories
    fields = ("id", "name", "description", "is_active", "created_at", "updated_at")
    defaults = {"description": "", "is_active": True}

    def coerce(self, name: str, value: Any) -> Any:
        if name == "is_active":
            return as_bool(value)
        return value

    @staticmethod
    def validate(data: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        name = str(data.get("name") or "").strip()
        if not name:
            errors.append("Category name is required")
        elif len(name) < 2:
            errors.append("Category name must be at least 2 characters long")
        elif len(name) > 100:
            errors.append("Category name must be less than 100 characters")

        description = data.get("description") or ""
        if len(description) > 500:
            errors.append("Description must be less than 500 characters")
        return errors

    @classmethod
    def create(
        cls,
        store: DataStore,
        name: str,
        description: str = "",
        *,
        is_active: bool = True,
        notifier: Notifier | None = None,
    ) -> JobCategory | str:
        category = cls(store, {"name": (name or "").strip(), "description": description, "is_active": is_active}, notifier=notifier)
        result = category.save()
        return category if result is True else result

    @classmethod
    def find_by_name(cls, store: DataStore, name: str) -> JobCategory | None:
        try:
            row = store.select_one(select(cls.table).where(cls.table.c.name == name.strip()))
        except StoreError:
            logger.exception("Category lookup failed name=%s", name)
            return None
        return cls(store, row) if row else None

    @classmethod
    def name_exists(cls, store: DataStore, name: str, exclude_id: int | None = None) -> bool:
        """Case-insensitive check. Storage errors propagate so that ``save`` can report them."""
        statement = select(cls.table.c.id).where(func.lower(cls.table.c.name) == name.strip().lower())
        if exclude_id:
            statement = statement.where(cls.table.c.id != exclude_id)
        return store.select_one(statement.limit(1)) is not None

    @classmethod
    def get_all(cls, store: DataStore, *, active_only: bool = True) -> list[dict[str, Any]]:
        c, j = cls.table, tables.jobs
        statement = (
            select(
                c,
                func.count(j.c.id).label("total_jobs"),
                func.coalesce(func.sum(case((j.c.status == "active", 1), else_=0)), 0).label("active_jobs"),
            )
            .select_from(c.outerjoin(j, j.c.category_id == c.c.id))
            .group_by(c.c.id)
            .order_by(c.c.name)
        )
        if active_only:
            statement = statement.where(c.c.is_active.is_(True))
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to list job categories")
            return []

    @classmethod
    def get_popular(cls, store: DataStore, limit: int = 5) -> list[dict[str, Any]]:
        c, j = cls.table, tables.jobs
        job_count = func.count(j.c.id).label("job_count")
        statement = (
            select(c, job_count)
            .select_from(c.join(j, and_(j.c.category_id == c.c.id, j.c.status == "active")))
            .where(c.c.is_active.is_(True))
            .group_by(c.c.id)
            .order_by(job_count.desc(), c.c.name)
            .limit(limit)
        )
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to list popular categories")
            return []

    def save(self) -> bool | str:
        errors = self.validate(self.to_dict())
        if errors:
            return ", ".join(errors)
        self.name = self.name.strip()
        values = {"name": self.name, "description": self.description or "", "is_active": self.is_active}
        try:
            if self.name_exists(self.store, self.name, exclude_id=self.id):
                return "Category name already exists"
            if self.id:
                values["updated_at"] = utc_now()
                self.store.update("job_categories", values, {"id": self.id})
            else:
                self.id = self.store.insert("job_categories", values)
        except IntegrityViolation:
            return "Category name already exists"
        except StoreError:
            logger.exception("Failed to save job category name=%s", self.name)
            return "An error occurred while saving the category"
        self.refresh()
        return True

    def update(self, *, name: str | None = None, description: str | None = None) -> bool | str:
        if name is not None:
            self.name = name
        if description is not None:
            self.description = description
        return self.save()

    def set_active(self, active: bool) -> bool:
        try:
            self.store.update("job_categories", {"is_active": active, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Failed to toggle job category id=%s", self.id)
            return False
        self.is_active = active
        return True

    def get_jobs_count(self, status: str | None = None) -> int:
        where: dict[str, Any] = {"category_id": self.id}
        if status:
            where["status"] = status
        return self._guarded(0, lambda: self.store.count("jobs", where))

    def get_active_jobs_count(self) -> int:
        return self.get_jobs_count("active")

    def get_jobs(self, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = filters or {}
        j, u = tables.jobs, tables.users
        statement = (
            select(j, u.c.company_name, u.c.first_name.label("publisher_first_name"), u.c.last_name.label("publisher_last_name"))
            .select_from(j.join(u, u.c.id == j.c.publisher_id))
            .where(j.c.category_id == self.id)
        )
        if filters.get("status"):
            statement = statement.where(j.c.status == filters["status"])
        if filters.get("job_type"):
            statement = statement.where(j.c.job_type == filters["job_type"])
        statement = statement.order_by(j.c.created_at.desc(), j.c.id.desc())
        if filters.get("limit"):
            statement = statement.limit(int(filters["limit"]))
        return self._guarded([], lambda: self.store.select(statement))

    def delete(self) -> bool | str:
        try:
            if self.store.count("jobs", {"category_id": self.id}) > 0:
                return "Cannot delete category that has jobs associated with it"
            self.store.delete("job_categories", {"id": self.id})
        except StoreError:
            logger.exception("Failed to delete job category id=%s", self.id)
            return "An error occurred while deleting the category"
        return True

    def get_statistics(self) -> dict[str, Any]:
        j, a = tables.jobs, tables.job_applications
        rows = self._guarded(
            [], lambda: self.store.select(select(j.c.status, j.c.payment_range).where(j.c.category_id == self.id))
        )
        ranges = [parsed for parsed in (parse_payment_range(row["payment_range"]) for row in rows) if parsed]
        applications = self._guarded(
            0,
            lambda: self.store.scalar(
                select(func.count(a.c.id)).select_from(a.join(j, j.c.id == a.c.job_id)).where(j.c.category_id == self.id)
            ),
        )
        return {
            "total_jobs": len(rows),
            "active_jobs": sum(1 for row in rows if row["status"] == "active"),
            "total_applications": int(applications or 0),
            "avg_min_payment": round(sum(low for low, _ in ranges) / len(ranges), 2) if ranges else 0.0,
            "avg_max_payment": round(sum(high for _, high in ranges) / len(ranges), 2) if ranges else 0.0,
        }
