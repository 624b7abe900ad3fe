from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import func, or_, select

from uniwiz.core.entity import Entity
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_date, as_int, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, StoreError
from uniwiz.types import JOB_STATUSES

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("title", "Title is required"),
    ("description", "Description is required"),
    ("category_id", "Category is required"),
    ("job_type", "Job type is required"),
    ("payment_range", "Payment range is required"),
)

UPDATABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "category_id",
    "job_type",
    "payment_range",
    "location",
    "requirements",
    "benefits",
    "deadline",
    "start_date",
    "vacancies",
)


def job_listing_query():
    """Jobs joined with publisher and category display columns."""
    j, u, c = tables.jobs, tables.users, tables.job_categories
    return select(
        j,
        u.c.company_name,
        u.c.first_name.label("publisher_first_name"),
        u.c.last_name.label("publisher_last_name"),
        c.c.name.label("category_name"),
    ).select_from(j.join(u, u.c.id == j.c.publisher_id).outerjoin(c, c.c.id == j.c.category_id))


def apply_job_filters(statement, filters: Mapping[str, Any]):
    j = tables.jobs
    for key in ("publisher_id", "status", "category_id", "job_type"):
        if filters.get(key) not in (None, ""):
            statement = statement.where(j.c[key] == filters[key])
    search = str(filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        statement = statement.where(
            or_(j.c.title.ilike(pattern), j.c.description.ilike(pattern), j.c.location.ilike(pattern))
        )
    statement = statement.order_by(j.c.created_at.desc(), j.c.id.desc())
    if filters.get("limit"):
        statement = statement.limit(int(filters["limit"]))
    if filters.get("offset"):
        statement = statement.offset(int(filters["offset"]))
    return statement


class Job(Entity):
    table = tables.jobs
    fields = (
        "id",
        "publisher_id",
        "title",
        "description",
        "category_id",
        "job_type",
        "payment_range",
        "location",
        "requirements",
        "benefits",
        "deadline",
        "start_date",
        "vacancies",
        "status",
        "created_at",
        "updated_at",
    )
    defaults = {
        "description": "",
        "location": "",
        "requirements": "",
        "benefits": "",
        "vacancies": 1,
        "status": "active",
    }

    def coerce(self, name: str, value: Any) -> Any:
        if name in {"deadline", "start_date"}:
            return as_date(value)
        if name in {"vacancies", "category_id", "publisher_id"} and value is not None:
            return as_int(value)
        return value

    @staticmethod
    def validate(data: Mapping[str, Any], *, partial: bool = False, today: date | None = None) -> list[str]:
        errors: list[str] = []
        for key, message in REQUIRED_FIELDS:
            if partial and key not in data:
                continue
            if not str(data.get(key) or "").strip():
                errors.append(message)

        if str(data.get("category_id") or "").strip() and as_int(data["category_id"]) is None:
            errors.append("Category must be a valid ID")

        if data.get("deadline"):
            try:
                deadline = as_date(data["deadline"])
            except ValueError:
                errors.append("Deadline must be a valid date")
            else:
                if deadline is not None and deadline <= (today or utc_now().date()):
                    errors.append("Deadline must be in the future")

        if not partial or "vacancies" in data:
            vacancies = as_int(data.get("vacancies", 1))
            if vacancies is None or vacancies < 1:
                errors.append("Vacancies must be a positive number")
        return errors

    @classmethod
    def create(
        cls,
        store: DataStore,
        publisher_id: int,
        data: Mapping[str, Any],
        *,
        notifier: Notifier | None = None,
    ) -> Job | str:
        fields = {key: data[key] for key in UPDATABLE_FIELDS if key in data}
        errors = cls.validate(fields)
        if errors:
            return ", ".join(errors)

        job = cls(store, {**fields, "publisher_id": publisher_id, "status": "active"}, notifier=notifier)
        try:
            publisher = store.select_one(select(tables.users).where(tables.users.c.id == publisher_id))
            if publisher is None or publisher["role"] != "publisher":
                return "Publisher not found"
            if not store.exists("job_categories", {"id": job.category_id}):
                return "Category not found"
            values = {key: getattr(job, key) for key in UPDATABLE_FIELDS}
            job.id = store.insert("jobs", {**values, "publisher_id": publisher_id, "status": "active"})
        except StoreError:
            logger.exception("Job creation failed publisher_id=%s", publisher_id)
            return "An error occurred while creating the job"
        job.refresh()

        poster = publisher.get("company_name") or " ".join(
            part for part in (publisher.get("first_name"), publisher.get("last_name")) if part
        )
        job.notifier.notify_role(
            "admin",
            "new_job_posted",
            f"New job posted by {poster}: {job.title}",
            "/admin/jobs",
        )
        return job

    @classmethod
    def find_active(cls, store: DataStore, job_id: int | None) -> Job | None:
        job = cls.find_by_id(store, job_id)
        return job if job is not None and job.is_active() else None

    @classmethod
    def get_all(cls, store: DataStore, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            return store.select(apply_job_filters(job_listing_query(), filters or {}))
        except StoreError:
            logger.exception("Failed to list jobs")
            return []

    def update(self, changes: Mapping[str, Any]) -> bool | str:
        fields = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        if not fields:
            return "No valid fields to update"
        errors = self.validate(fields, partial=True)
        if errors:
            return ", ".join(errors)

        values = {key: self.coerce(key, value) for key, value in fields.items()}
        try:
            if "category_id" in values and not self.store.exists("job_categories", {"id": values["category_id"]}):
                return "Category not found"
            self.store.update("jobs", {**values, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Job update failed id=%s", self.id)
            return "An error occurred while updating the job"
        self.refresh()
        return True

    def update_status(self, status: str) -> bool | str:
        if status not in JOB_STATUSES:
            return "Invalid job status"
        try:
            self.store.update("jobs", {"status": status, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Job status update failed id=%s", self.id)
            return "An error occurred while updating the job status"
        self.status = status
        return True

    def extend_deadline(self, new_deadline: date | str) -> bool | str:
        try:
            deadline = as_date(new_deadline)
        except ValueError:
            return "Deadline must be a valid date"
        if deadline is None or deadline <= utc_now().date():
            return "Deadline must be in the future"
        try:
            self.store.update("jobs", {"deadline": deadline, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Deadline extension failed id=%s", self.id)
            return "An error occurred while extending the deadline"
        self.deadline = deadline
        return True

    def delete(self) -> bool:
        try:
            with self.store.transaction():
                self.store.delete("job_applications", {"job_id": self.id})
                self.store.delete("wishlist", {"job_id": self.id})
                self.store.delete("jobs", {"id": self.id})
        except StoreError:
            logger.exception("Job delete failed id=%s", self.id)
            return False
        return True

    def is_active(self) -> bool:
        return self.status == "active"

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.deadline is None:
            return False
        return datetime.combine(self.deadline, time.min) < (now or utc_now())

    def get_applications_count(self, status: str | None = None) -> int:
        where: dict[str, Any] = {"job_id": self.id}
        if status:
            where["status"] = status
        return self._guarded(0, lambda: self.store.count("job_applications", where))

    def get_accepted_count(self) -> int:
        return self.get_applications_count("accepted")

    def get_pending_count(self) -> int:
        return self.get_applications_count("pending")

    def has_available_positions(self) -> bool:
        return self.get_accepted_count() < (self.vacancies or 0)

    def get_applications(self, status: str | None = None) -> list[dict[str, Any]]:
        a, u = tables.job_applications, tables.users
        statement = (
            select(a, u.c.first_name, u.c.last_name, u.c.email, u.c.profile_image_url)
            .select_from(a.join(u, u.c.id == a.c.student_id))
            .where(a.c.job_id == self.id)
        )
        if status:
            statement = statement.where(a.c.status == status)
        statement = statement.order_by(a.c.applied_at.desc(), a.c.id.desc())
        return self._guarded([], lambda: self.store.select(statement))

    def has_student_applied(self, student_id: int) -> bool:
        return self._guarded(
            False, lambda: self.store.exists("job_applications", {"job_id": self.id, "student_id": student_id})
        )

    def get_student_application_status(self, student_id: int) -> str | None:
        a = tables.job_applications
        statement = select(a.c.status).where(a.c.job_id == self.id, a.c.student_id == student_id)
        return self._guarded(None, lambda: self.store.scalar(statement))

    def get_publisher(self) -> dict[str, Any] | None:
        statement = select(tables.users).where(tables.users.c.id == self.publisher_id)
        return self._guarded(None, lambda: self.store.select_one(statement))

    def get_category(self) -> dict[str, Any] | None:
        if not self.category_id:
            return None
        c = tables.job_categories
        return self._guarded(None, lambda: self.store.select_one(select(c).where(c.c.id == self.category_id)))

    def get_wishlist_count(self) -> int:
        return self._guarded(0, lambda: self.store.count("wishlist", {"job_id": self.id}))

    def get_full_details(self) -> dict[str, Any]:
        publisher = self.get_publisher() or {}
        category = self.get_category() or {}
        a = tables.job_applications
        statement = select(a.c.status, func.count(a.c.id).label("total")).where(a.c.job_id == self.id).group_by(a.c.status)
        counts = {row["status"]: int(row["total"]) for row in self._guarded([], lambda: self.store.select(statement))}
        accepted = counts.get("accepted", 0)
        return {
            **self.to_dict(),
            "company_name": publisher.get("company_name"),
            "publisher_first_name": publisher.get("first_name"),
            "publisher_last_name": publisher.get("last_name"),
            "category_name": category.get("name"),
            "applications_count": sum(counts.values()),
            "accepted_count": accepted,
            "pending_count": counts.get("pending", 0),
            "has_available_positions": accepted < (self.vacancies or 0),
            "is_expired": self.is_expired(),
        }
