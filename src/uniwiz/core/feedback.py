from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select

from uniwiz.core.entity import Entity
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_bool, as_int, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, IntegrityViolation, StoreError
from uniwiz.types import FEEDBACK_STATUSES

logger = logging.getLogger(__name__)

MAX_REVIEW_LENGTH = 1000


def validate_rating(value: Any) -> str | None:
    if value is None or value == "":
        return "Rating is required and must be numeric"
    rating = as_int(value)
    if rating is None:
        try:
            float(value)
        except (TypeError, ValueError):
            return "Rating is required and must be numeric"
        return "Rating must be a whole number"
    if rating < 1 or rating > 5:
        return "Rating must be between 1 and 5"
    return None


class Feedback(Entity):
    table = tables.company_reviews
    fields = (
        "id",
        "student_id",
        "publisher_id",
        "job_id",
        "rating",
        "review_text",
        "is_anonymous",
        "status",
        "created_at",
        "updated_at",
    )
    defaults = {"review_text": "", "is_anonymous": False, "status": "active"}

    def coerce(self, name: str, value: Any) -> Any:
        if name == "is_anonymous":
            return as_bool(value)
        if name == "rating" and value is not None:
            rating = as_int(value)
            return rating if rating is not None else value
        return value

    @staticmethod
    def validate(data: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        if not data.get("student_id"):
            errors.append("Student ID is required")
        if not data.get("publisher_id"):
            errors.append("Publisher ID is required")
        rating_error = validate_rating(data.get("rating"))
        if rating_error:
            errors.append(rating_error)
        if len(data.get("review_text") or "") > MAX_REVIEW_LENGTH:
            errors.append(f"Review must be less than {MAX_REVIEW_LENGTH} characters")
        return errors

    @classmethod
    def create(
        cls,
        store: DataStore,
        student_id: int,
        publisher_id: int,
        rating: Any,
        review_text: str = "",
        *,
        job_id: int | None = None,
        is_anonymous: bool = False,
        notifier: Notifier | None = None,
    ) -> Feedback | str:
        data = {
            "student_id": student_id,
            "publisher_id": publisher_id,
            "job_id": job_id,
            "rating": rating,
            "review_text": review_text or "",
            "is_anonymous": is_anonymous,
        }
        errors = cls.validate(data)
        if errors:
            return ", ".join(errors)

        feedback = cls(store, {**data, "status": "active"}, notifier=notifier)
        try:
            if store.select_one(cls._existing_review_query(student_id, publisher_id, job_id)) is not None:
                return "You have already reviewed this company"
            if not store.exists("users", {"id": publisher_id, "role": "publisher"}):
                return "Publisher not found"
            if job_id and store.select_one(cls._placement_query(student_id, publisher_id, job_id)) is None:
                return "You can only review companies you have worked with"
            feedback.id = store.insert(
                "company_reviews",
                {key: getattr(feedback, key) for key in data} | {"status": "active"},
            )
        except IntegrityViolation:
            return "You have already reviewed this company"
        except StoreError:
            logger.exception("Review create failed student_id=%s publisher_id=%s", student_id, publisher_id)
            return "An error occurred while submitting the review"
        feedback.refresh()

        reviewer = "Anonymous"
        if not feedback.is_anonymous:
            try:
                student = store.select_one(
                    select(tables.users.c.first_name, tables.users.c.last_name).where(tables.users.c.id == student_id)
                )
            except StoreError:
                logger.exception("Reviewer lookup failed student_id=%s", student_id)
                student = None
            if student:
                reviewer = " ".join(part for part in (student["first_name"], student["last_name"]) if part) or reviewer
        feedback.notifier.notify(
            publisher_id,
            "new_review",
            f"New review received from {reviewer} ({feedback.rating} stars)",
            "/reviews",
        )
        return feedback

    @classmethod
    def _existing_review_query(cls, student_id: int, publisher_id: int, job_id: int | None):
        r = cls.table
        statement = select(r).where(r.c.student_id == student_id, r.c.publisher_id == publisher_id)
        if job_id:
            statement = statement.where(r.c.job_id == job_id)
        return statement.limit(1)

    @staticmethod
    def _placement_query(student_id: int, publisher_id: int, job_id: int):
        """An accepted application of the student on one of the publisher's jobs."""
        a, j = tables.job_applications, tables.jobs
        return (
            select(a.c.id)
            .select_from(a.join(j, j.c.id == a.c.job_id))
            .where(
                a.c.student_id == student_id,
                a.c.job_id == job_id,
                a.c.status == "accepted",
                j.c.publisher_id == publisher_id,
            )
            .limit(1)
        )

    @classmethod
    def find_by_student_publisher_job(
        cls, store: DataStore, student_id: int, publisher_id: int, job_id: int | None = None
    ) -> Feedback | None:
        try:
            row = store.select_one(cls._existing_review_query(student_id, publisher_id, job_id))
        except StoreError:
            logger.exception("Review lookup failed student_id=%s publisher_id=%s", student_id, publisher_id)
            return None
        return cls(store, row) if row else None

    @classmethod
    def has_worked_with(cls, store: DataStore, student_id: int, publisher_id: int, job_id: int) -> bool:
        try:
            return store.select_one(cls._placement_query(student_id, publisher_id, job_id)) is not None
        except StoreError:
            logger.exception("Placement lookup failed student_id=%s job_id=%s", student_id, job_id)
            return False

    @classmethod
    def get_all(cls, store: DataStore, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = filters or {}
        r, u, j = cls.table, tables.users, tables.jobs
        statement = (
            select(
                r,
                u.c.first_name.label("student_first_name"),
                u.c.last_name.label("student_last_name"),
                j.c.title.label("job_title"),
            )
            .select_from(r.join(u, u.c.id == r.c.student_id).outerjoin(j, j.c.id == r.c.job_id))
            .where(r.c.status == filters.get("status", "active"))
        )
        for key in ("student_id", "publisher_id", "job_id", "rating"):
            if filters.get(key) not in (None, ""):
                statement = statement.where(r.c[key] == filters[key])
        if filters.get("min_rating"):
            statement = statement.where(r.c.rating >= int(filters["min_rating"]))
        statement = statement.order_by(r.c.created_at.desc(), r.c.id.desc())
        if filters.get("limit"):
            statement = statement.limit(int(filters["limit"]))
        try:
            rows = store.select(statement)
        except StoreError:
            logger.exception("Failed to list reviews")
            return []
        for row in rows:
            if row["is_anonymous"]:
                row["student_first_name"] = None
                row["student_last_name"] = None
        return rows

    @classmethod
    def get_by_publisher(cls, store: DataStore, publisher_id: int, limit: int = 20) -> list[dict[str, Any]]:
        return cls.get_all(store, {"publisher_id": publisher_id, "limit": limit})

    @classmethod
    def get_by_student(cls, store: DataStore, student_id: int, limit: int = 20) -> list[dict[str, Any]]:
        return cls.get_all(store, {"student_id": student_id, "limit": limit})

    @classmethod
    def get_recent(cls, store: DataStore, limit: int = 10) -> list[dict[str, Any]]:
        return cls.get_all(store, {"limit": limit})

    @classmethod
    def get_publisher_rating_stats(cls, store: DataStore, publisher_id: int) -> dict[str, Any]:
        r = cls.table
        try:
            rows = store.select(
                select(r.c.rating, func.count(r.c.id).label("total"))
                .where(r.c.publisher_id == publisher_id, r.c.status == "active")
                .group_by(r.c.rating)
            )
        except StoreError:
            logger.exception("Rating stats query failed publisher_id=%s", publisher_id)
            rows = []
        distribution = {rating: 0 for rating in range(1, 6)}
        for row in rows:
            distribution[int(row["rating"])] = int(row["total"])
        total = sum(distribution.values())
        present = [rating for rating, count in distribution.items() if count]
        weighted = sum(rating * count for rating, count in distribution.items())
        return {
            "total_reviews": total,
            "average_rating": round(weighted / total, 2) if total else 0.0,
            "min_rating": min(present) if present else None,
            "max_rating": max(present) if present else None,
            "rating_distribution": distribution,
        }

    @classmethod
    def get_student_feedback_stats(cls, store: DataStore, student_id: int) -> dict[str, Any]:
        r = cls.table
        try:
            row = store.select_one(
                select(func.count(r.c.id).label("total_given"), func.avg(r.c.rating).label("average"))
                .where(r.c.student_id == student_id, r.c.status == "active")
            ) or {}
        except StoreError:
            logger.exception("Review stats query failed student_id=%s", student_id)
            row = {}
        return {
            "total_given": int(row.get("total_given") or 0),
            "average_rating_given": round(float(row["average"]), 2) if row.get("average") is not None else 0.0,
        }

    @classmethod
    def get_top_rated_publishers(cls, store: DataStore, limit: int = 10, min_reviews: int = 1) -> list[dict[str, Any]]:
        r, u = cls.table, tables.users
        average = func.avg(r.c.rating).label("average_rating")
        total = func.count(r.c.id).label("total_reviews")
        statement = (
            select(u.c.id.label("publisher_id"), u.c.company_name, average, total)
            .select_from(r.join(u, u.c.id == r.c.publisher_id))
            .where(r.c.status == "active")
            .group_by(u.c.id, u.c.company_name)
            .having(func.count(r.c.id) >= min_reviews)
            .order_by(average.desc(), total.desc())
            .limit(limit)
        )
        try:
            rows = store.select(statement)
        except StoreError:
            logger.exception("Top rated publishers query failed")
            return []
        for row in rows:
            row["average_rating"] = round(float(row["average_rating"]), 2)
        return rows

    def update(
        self,
        *,
        rating: Any | None = None,
        review_text: str | None = None,
        is_anonymous: bool | None = None,
    ) -> bool | str:
        changes: dict[str, Any] = {}
        if rating is not None:
            changes["rating"] = rating
        if review_text is not None:
            changes["review_text"] = review_text
        if is_anonymous is not None:
            changes["is_anonymous"] = bool(is_anonymous)
        if not changes:
            return "Nothing to update"

        errors = self.validate({**self.to_dict(), **changes})
        if errors:
            return ", ".join(errors)
        values = {key: self.coerce(key, value) for key, value in changes.items()}
        try:
            self.store.update("company_reviews", {**values, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Review update failed id=%s", self.id)
            return "An error occurred while updating the review"
        self.refresh()
        return True

    def update_status(self, status: str) -> bool | str:
        if status not in FEEDBACK_STATUSES:
            return "Invalid review status"
        if self.status == "deleted" and status != "deleted":
            return "Deleted reviews cannot be restored"
        try:
            self.store.update("company_reviews", {"status": status, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Review status update failed id=%s", self.id)
            return "An error occurred while updating the review"
        self.status = status
        return True

    def hide(self) -> bool | str:
        return self.update_status("hidden")

    def delete(self) -> bool | str:
        return self.update_status("deleted")

    def is_active(self) -> bool:
        return self.status == "active"

    def get_full_details(self) -> dict[str, Any]:
        u = tables.users
        details = self.to_dict()
        publisher = select(u.c.id, u.c.company_name, u.c.first_name, u.c.last_name).where(u.c.id == self.publisher_id)
        details["publisher"] = self._guarded(None, lambda: self.store.select_one(publisher))
        if self.is_anonymous:
            details["student"] = None
        else:
            student = select(u.c.id, u.c.first_name, u.c.last_name).where(u.c.id == self.student_id)
            details["student"] = self._guarded(None, lambda: self.store.select_one(student))
        if self.job_id:
            j = tables.jobs
            job = select(j.c.id, j.c.title).where(j.c.id == self.job_id)
            details["job"] = self._guarded(None, lambda: self.store.select_one(job))
        return details
