from __future__ import annotations

from typing import Any

from sqlalchemy import func, select

from uniwiz.config import get_settings
from uniwiz.core.application import Application
from uniwiz.core.feedback import Feedback
from uniwiz.core.wishlist import Wishlist
from uniwiz.db import tables
from uniwiz.types import ToggleResult
from uniwiz.users.registered import RegisteredUser


class Student(RegisteredUser):
    role = "student"
    profile_table = "student_profiles"
    profile_fields = (
        "university_name",
        "field_of_study",
        "year_of_study",
        "languages_spoken",
        "preferred_categories",
        "skills",
        "cv_url",
    )
    extra_permissions = frozenset(
        {
            "apply_to_jobs",
            "view_job_details",
            "search_jobs",
            "manage_wishlist",
            "upload_cv",
            "view_application_history",
            "create_reviews",
            "view_recommendations",
        }
    )

    def get_dashboard_stats(self) -> dict[str, Any]:
        a, j, u = tables.job_applications, tables.jobs, tables.users
        counts = {
            row["status"]: int(row["total"])
            for row in self._safe_select(
                select(a.c.status, func.count(a.c.id).label("total"))
                .where(a.c.student_id == self.id)
                .group_by(a.c.status)
            )
        }
        recent = self._safe_select(
            select(
                a.c.id,
                a.c.status,
                a.c.applied_at,
                j.c.id.label("job_id"),
                j.c.title.label("job_title"),
                u.c.company_name,
            )
            .select_from(a.join(j, j.c.id == a.c.job_id).join(u, u.c.id == j.c.publisher_id))
            .where(a.c.student_id == self.id)
            .order_by(a.c.applied_at.desc(), a.c.id.desc())
            .limit(get_settings().dashboard_recent_limit)
        )
        wishlist_count = self._safe_scalar(
            select(func.count(tables.wishlist.c.id)).where(tables.wishlist.c.student_id == self.id)
        )
        return {
            "applications_sent": sum(counts.values()),
            "applications_accepted": counts.get("accepted", 0),
            "applications_viewed": counts.get("viewed", 0),
            "applications_pending": counts.get("pending", 0),
            "wishlist_count": int(wishlist_count),
            "recent_applications": recent,
        }

    def apply_to_job(self, job_id: int, proposal: str = "") -> Application | str:
        return Application.create(self.store, self.id, job_id, proposal, notifier=self.notifier)

    def get_application_history(self, status: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        return Application.get_all(self.store, {"student_id": self.id, "status": status, "limit": limit})

    def add_to_wishlist(self, job_id: int) -> Wishlist | str:
        return Wishlist.add_to_wishlist(self.store, self.id, job_id, notifier=self.notifier)

    def remove_from_wishlist(self, job_id: int) -> bool | str:
        return Wishlist.remove_from_wishlist(self.store, self.id, job_id)

    def toggle_wishlist(self, job_id: int) -> ToggleResult:
        return Wishlist.toggle_wishlist(self.store, self.id, job_id)

    def get_wishlist_jobs(self, limit: int | None = None, offset: int = 0) -> list[dict[str, Any]]:
        return Wishlist.get_by_student(self.store, self.id, limit=limit, offset=offset)

    def get_recommended_jobs(self, limit: int = 10) -> list[dict[str, Any]]:
        return Wishlist.get_recommended_from_wishlist(self.store, self.id, limit)

    def create_review(
        self,
        publisher_id: int,
        rating: Any,
        review_text: str = "",
        *,
        job_id: int | None = None,
        is_anonymous: bool = False,
    ) -> Feedback | str:
        return Feedback.create(
            self.store,
            self.id,
            publisher_id,
            rating,
            review_text,
            job_id=job_id,
            is_anonymous=is_anonymous,
            notifier=self.notifier,
        )
