from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select

from uniwiz.config import get_settings
from uniwiz.core.feedback import Feedback
from uniwiz.core.job import Job
from uniwiz.core.job_category import JobCategory
from uniwiz.db import tables
from uniwiz.db.store import DataStore, StoreError
from uniwiz.users.base import UserAccount

logger = logging.getLogger(__name__)

VISITOR_PERMISSIONS: frozenset[str] = frozenset(
    {"view_public_jobs", "search_jobs", "view_company_profiles", "register_account", "login"}
)


class Visitor(UserAccount):
    """Anonymous, read-only account. Never persisted."""

    role = "visitor"

    def __init__(self, store: DataStore, data: Mapping[str, Any] | None = None, **kwargs: Any):
        super().__init__(store, {**(data or {}), "id": None, "status": "active"}, **kwargs)

    def get_permissions(self) -> frozenset[str]:
        return VISITOR_PERMISSIONS

    def get_profile_data(self) -> dict[str, Any]:
        return {"role": self.role, "permissions": sorted(VISITOR_PERMISSIONS)}

    def get_dashboard_stats(self) -> dict[str, Any]:
        return {}

    def save(self) -> bool | str:
        return "Visitors cannot be saved"

    def delete(self) -> bool:
        return False

    def get_public_jobs(self, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = {**(filters or {}), "status": "active"}
        filters.setdefault("limit", get_settings().public_jobs_limit)
        return Job.get_all(self.store, filters)

    def search_jobs(self, term: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return self.get_public_jobs({**(filters or {}), "search": term})

    def get_public_job_details(self, job_id: int) -> dict[str, Any] | None:
        job = Job.find_active(self.store, job_id)
        if job is None:
            return None
        details = job.get_full_details()
        details.pop("accepted_count", None)
        details.pop("pending_count", None)
        return details

    def get_public_company_profile(self, publisher_id: int) -> dict[str, Any] | None:
        u, p = tables.users, tables.publisher_profiles
        try:
            row = self.store.select_one(
                select(
                    u.c.id,
                    u.c.company_name,
                    u.c.first_name,
                    u.c.last_name,
                    u.c.profile_image_url,
                    u.c.created_at,
                    p.c.about,
                    p.c.industry,
                    p.c.website_url,
                    p.c.address,
                    p.c.facebook_url,
                    p.c.linkedin_url,
                    p.c.instagram_url,
                    p.c.cover_image_url,
                )
                .select_from(u.outerjoin(p, p.c.user_id == u.c.id))
                .where(u.c.id == publisher_id, u.c.role == "publisher", u.c.status == "active")
            )
        except StoreError:
            logger.exception("Public company profile lookup failed publisher_id=%s", publisher_id)
            return None
        if row is None:
            return None
        row["active_jobs"] = Job.get_all(self.store, {"publisher_id": publisher_id, "status": "active"})
        row["rating"] = Feedback.get_publisher_rating_stats(self.store, publisher_id)
        return row

    def get_public_company_reviews(self, publisher_id: int, limit: int = 10) -> list[dict[str, Any]]:
        return Feedback.get_by_publisher(self.store, publisher_id, limit=limit)

    def get_job_categories(self) -> list[dict[str, Any]]:
        return JobCategory.get_all(self.store, active_only=True)

    def get_public_stats(self) -> dict[str, int]:
        u, j, a = tables.users, tables.jobs, tables.job_applications
        try:
            return {
                "active_jobs": int(self.store.scalar(select(func.count(j.c.id)).where(j.c.status == "active")) or 0),
                "companies": int(
                    self.store.scalar(select(func.count(u.c.id)).where(u.c.role == "publisher", u.c.status == "active")) or 0
                ),
                "students": int(
                    self.store.scalar(select(func.count(u.c.id)).where(u.c.role == "student", u.c.status == "active")) or 0
                ),
                "placements": int(self.store.scalar(select(func.count(a.c.id)).where(a.c.status == "accepted")) or 0),
            }
        except StoreError:
            logger.exception("Public stats query failed")
            return {"active_jobs": 0, "companies": 0, "students": 0, "placements": 0}
