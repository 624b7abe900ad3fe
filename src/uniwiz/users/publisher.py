from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import case, func, select

from uniwiz.config import get_settings
from uniwiz.core.application import Application
from uniwiz.core.feedback import Feedback
from uniwiz.core.job import Job
from uniwiz.core.values import utc_now
from uniwiz.db import tables
from uniwiz.users.registered import RegisteredUser

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Job not found or access denied"


class Publisher(RegisteredUser):
    role = "publisher"
    profile_table = "publisher_profiles"
    profile_fields = (
        "about",
        "industry",
        "website_url",
        "address",
        "phone_number",
        "facebook_url",
        "linkedin_url",
        "instagram_url",
        "cover_image_url",
        "required_doc_url",
    )
    extra_permissions = frozenset(
        {
            "create_jobs",
            "edit_jobs",
            "view_applicants",
            "manage_applications",
            "view_company_analytics",
            "upload_company_documents",
            "manage_company_profile",
            "extend_job_deadlines",
        }
    )

    def get_dashboard_stats(self) -> dict[str, Any]:
        a, j, u = tables.job_applications, tables.jobs, tables.users
        recent_limit = get_settings().dashboard_recent_limit
        today_start = datetime.combine(utc_now().date(), time.min)

        owned = a.join(j, j.c.id == a.c.job_id)
        active_jobs = self._safe_scalar(
            select(func.count(j.c.id)).where(j.c.publisher_id == self.id, j.c.status == "active")
        )
        total_applicants = self._safe_scalar(
            select(func.count(a.c.id)).select_from(owned).where(j.c.publisher_id == self.id)
        )
        todays_applications = self._safe_scalar(
            select(func.count(a.c.id))
            .select_from(owned)
            .where(j.c.publisher_id == self.id, a.c.applied_at >= today_start, a.c.applied_at < today_start + timedelta(days=1))
        )
        pending_applications = self._safe_scalar(
            select(func.count(a.c.id)).select_from(owned).where(j.c.publisher_id == self.id, a.c.status == "pending")
        )
        recent_applicants = self._safe_select(
            select(
                a.c.id,
                a.c.status,
                a.c.applied_at,
                j.c.title.label("job_title"),
                u.c.first_name,
                u.c.last_name,
                u.c.profile_image_url,
            )
            .select_from(owned.join(u, u.c.id == a.c.student_id))
            .where(j.c.publisher_id == self.id)
            .order_by(a.c.applied_at.desc(), a.c.id.desc())
            .limit(recent_limit)
        )
        job_overview = self._safe_select(
            select(
                j.c.id,
                j.c.title,
                j.c.status,
                j.c.created_at,
                func.count(a.c.id).label("application_count"),
                func.coalesce(func.sum(case((a.c.status == "accepted", 1), else_=0)), 0).label("accepted_count"),
            )
            .select_from(j.outerjoin(a, a.c.job_id == j.c.id))
            .where(j.c.publisher_id == self.id)
            .group_by(j.c.id, j.c.title, j.c.status, j.c.created_at)
            .order_by(j.c.created_at.desc(), j.c.id.desc())
            .limit(recent_limit)
        )
        rating = Feedback.get_publisher_rating_stats(self.store, self.id)
        return {
            "active_jobs": int(active_jobs),
            "total_applicants": int(total_applicants),
            "todays_applications": int(todays_applications),
            "pending_applications": int(pending_applications),
            "recent_applicants": recent_applicants,
            "job_overview": job_overview,
            "latest_reviews": Feedback.get_by_publisher(self.store, self.id, limit=3),
            "average_rating": round(rating["average_rating"], 1),
            "total_review_count": rating["total_reviews"],
        }

    def owns(self, job: Job | None) -> bool:
        return job is not None and job.publisher_id == self.id

    def get_owned_job(self, job_id: int) -> Job | None:
        job = Job.find_by_id(self.store, job_id, notifier=self.notifier)
        return job if self.owns(job) else None

    def create_job(self, data: Mapping[str, Any]) -> Job | str:
        return Job.create(self.store, self.id, data, notifier=self.notifier)

    def update_job(self, job_id: int, changes: Mapping[str, Any]) -> bool | str:
        job = self.get_owned_job(job_id)
        if job is None:
            return ACCESS_DENIED
        return job.update(changes)

    def delete_job(self, job_id: int) -> bool | str:
        job = self.get_owned_job(job_id)
        if job is None:
            return ACCESS_DENIED
        return job.delete()

    def extend_job_deadline(self, job_id: int, new_deadline: date | str) -> bool | str:
        job = self.get_owned_job(job_id)
        if job is None:
            return ACCESS_DENIED
        return job.extend_deadline(new_deadline)

    def set_job_status(self, job_id: int, status: str) -> bool | str:
        job = self.get_owned_job(job_id)
        if job is None:
            return ACCESS_DENIED
        return job.update_status(status)

    def get_jobs(self, status: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        return Job.get_all(self.store, {"publisher_id": self.id, "status": status, "limit": limit})

    def get_job_applicants(self, job_id: int, status: str | None = None) -> list[dict[str, Any]] | str:
        job = self.get_owned_job(job_id)
        if job is None:
            return ACCESS_DENIED
        return job.get_applications(status)

    def update_application_status(self, application_id: int, status: str) -> bool | str:
        application = Application.find_by_id(self.store, application_id, notifier=self.notifier)
        if application is None or not self.owns(application.get_job()):
            return "Application not found or access denied"
        return application.update_status(status)

    def get_reviews(self, limit: int = 20) -> list[dict[str, Any]]:
        return Feedback.get_by_publisher(self.store, self.id, limit=limit)

    def get_rating_stats(self) -> dict[str, Any]:
        return Feedback.get_publisher_rating_stats(self.store, self.id)
