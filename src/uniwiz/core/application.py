from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select

from uniwiz.core.entity import Entity
from uniwiz.core.job import Job
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_datetime, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, IntegrityViolation, StoreError
from uniwiz.types import APPLICATION_STATUSES

logger = logging.getLogger(__name__)

MAX_PROPOSAL_LENGTH = 1000

# status -> statuses reachable from it
TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"viewed", "accepted", "rejected"}),
    "viewed": frozenset({"accepted", "rejected"}),
    "accepted": frozenset(),
    "rejected": frozenset(),
}

STATUS_MESSAGES: dict[str, str] = {
    "viewed": "Your application for {title} has been viewed",
    "accepted": "Congratulations! Your application for {title} has been accepted",
    "rejected": "Your application for {title} has been rejected",
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


class Application(Entity):
    table = tables.job_applications
    fields = ("id", "student_id", "job_id", "proposal", "status", "applied_at", "updated_at")
    defaults = {"proposal": "", "status": "pending"}

    def coerce(self, name: str, value: Any) -> Any:
        if name in {"applied_at", "updated_at"}:
            return as_datetime(value)
        return value

    @staticmethod
    def validate(data: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        if not data.get("student_id"):
            errors.append("Student ID is required")
        if not data.get("job_id"):
            errors.append("Job ID is required")
        if len(data.get("proposal") or "") > MAX_PROPOSAL_LENGTH:
            errors.append(f"Proposal must be less than {MAX_PROPOSAL_LENGTH} characters")
        return errors

    @classmethod
    def create(
        cls,
        store: DataStore,
        student_id: int,
        job_id: int,
        proposal: str = "",
        *,
        notifier: Notifier | None = None,
    ) -> Application | str:
        errors = cls.validate({"student_id": student_id, "job_id": job_id, "proposal": proposal})
        if errors:
            return ", ".join(errors)

        try:
            if store.exists("job_applications", {"student_id": student_id, "job_id": job_id}):
                return "You have already applied to this job"
            job = Job.find_active(store, job_id)
            if job is None:
                return "Job not found or no longer active"
            if not store.exists("users", {"id": student_id, "role": "student"}):
                return "Student not found"

            now = utc_now()
            application_id = store.insert(
                "job_applications",
                {
                    "student_id": student_id,
                    "job_id": job_id,
                    "proposal": proposal or "",
                    "status": "pending",
                    "applied_at": now,
                    "updated_at": now,
                },
            )
        except IntegrityViolation:
            return "You have already applied to this job"
        except StoreError:
            logger.exception("Application create failed student_id=%s job_id=%s", student_id, job_id)
            return "An error occurred while submitting the application"

        application = cls.find_by_id(store, application_id, notifier=notifier)
        if application is None:
            return "An error occurred while submitting the application"
        application.notifier.notify(
            job.publisher_id,
            "new_application",
            f"New application received for {job.title}",
            "/applicants",
        )
        return application

    @classmethod
    def find_by_student_and_job(cls, store: DataStore, student_id: int, job_id: int) -> Application | None:
        a = cls.table
        try:
            row = store.select_one(select(a).where(a.c.student_id == student_id, a.c.job_id == job_id))
        except StoreError:
            logger.exception("Application lookup failed student_id=%s job_id=%s", student_id, job_id)
            return None
        return cls(store, row) if row else None

    @classmethod
    def get_all(cls, store: DataStore, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = filters or {}
        a, j, u = cls.table, tables.jobs, tables.users
        statement = (
            select(
                a,
                j.c.title.label("job_title"),
                j.c.publisher_id,
                u.c.first_name.label("student_first_name"),
                u.c.last_name.label("student_last_name"),
                u.c.email.label("student_email"),
            )
            .select_from(a.join(j, j.c.id == a.c.job_id).join(u, u.c.id == a.c.student_id))
        )
        for key, column in (("student_id", a.c.student_id), ("job_id", a.c.job_id), ("status", a.c.status), ("publisher_id", j.c.publisher_id)):
            if filters.get(key) not in (None, ""):
                statement = statement.where(column == filters[key])
        statement = statement.order_by(a.c.applied_at.desc(), a.c.id.desc())
        if filters.get("limit"):
            statement = statement.limit(int(filters["limit"]))
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to list applications")
            return []

    def update_status(self, status: str) -> bool | str:
        if status not in APPLICATION_STATUSES:
            return "Invalid application status"
        if status == self.status:
            return True
        if not can_transition(self.status, status):
            return f"Cannot change application status from {self.status} to {status}"

        now = utc_now()
        try:
            updated = self.store.update(
                "job_applications",
                {"status": status, "updated_at": now},
                {"id": self.id, "status": self.status},
            )
        except StoreError:
            logger.exception("Application status update failed id=%s", self.id)
            return "An error occurred while updating the application"
        if updated == 0:
            self.refresh()
            return "Application was modified concurrently, please reload"

        self.status = status
        self.updated_at = now
        job = self.get_job()
        if job is not None:
            self.notifier.notify(
                self.student_id,
                "application_status_updated",
                STATUS_MESSAGES[status].format(title=job.title),
                "/applications",
            )
        return True

    def accept(self) -> bool | str:
        return self.update_status("accepted")

    def reject(self) -> bool | str:
        return self.update_status("rejected")

    def mark_as_viewed(self) -> bool | str:
        return self.update_status("viewed")

    def delete(self) -> bool:
        try:
            self.store.delete("job_applications", {"id": self.id})
        except StoreError:
            logger.exception("Application delete failed id=%s", self.id)
            return False
        return True

    def is_pending(self) -> bool:
        return self.status == "pending"

    def is_viewed(self) -> bool:
        return self.status == "viewed"

    def is_accepted(self) -> bool:
        return self.status == "accepted"

    def is_rejected(self) -> bool:
        return self.status == "rejected"

    def is_final(self) -> bool:
        return not TRANSITIONS.get(self.status)

    def get_job(self) -> Job | None:
        return Job.find_by_id(self.store, self.job_id)

    def get_student(self) -> dict[str, Any] | None:
        try:
            return self.store.select_one(select(tables.users).where(tables.users.c.id == self.student_id))
        except StoreError:
            logger.exception("Student lookup failed application_id=%s", self.id)
            return None

    def get_publisher(self) -> dict[str, Any] | None:
        job = self.get_job()
        return job.get_publisher() if job is not None else None

    def get_full_details(self) -> dict[str, Any]:
        job = self.get_job()
        student = self.get_student() or {}
        return {
            **self.to_dict(),
            "job": job.to_dict() if job is not None else None,
            "student": {
                "id": student.get("id"),
                "first_name": student.get("first_name"),
                "last_name": student.get("last_name"),
                "email": student.get("email"),
            },
            "publisher": self.get_publisher(),
        }

    @staticmethod
    def _status_counts(store: DataStore, statement) -> dict[str, int]:
        counts = {status: 0 for status in APPLICATION_STATUSES}
        try:
            rows = store.select(statement)
        except StoreError:
            logger.exception("Application stats query failed")
            rows = []
        for row in rows:
            counts[row["status"]] = int(row["total"])
        return {"total": sum(counts.values()), **counts}

    @classmethod
    def get_student_stats(cls, store: DataStore, student_id: int) -> dict[str, int]:
        a = cls.table
        statement = (
            select(a.c.status, func.count(a.c.id).label("total"))
            .where(a.c.student_id == student_id)
            .group_by(a.c.status)
        )
        return cls._status_counts(store, statement)

    @classmethod
    def get_publisher_stats(cls, store: DataStore, publisher_id: int) -> dict[str, int]:
        a, j = cls.table, tables.jobs
        statement = (
            select(a.c.status, func.count(a.c.id).label("total"))
            .select_from(a.join(j, j.c.id == a.c.job_id))
            .where(j.c.publisher_id == publisher_id)
            .group_by(a.c.status)
        )
        return cls._status_counts(store, statement)
