from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from sqlalchemy import case, func, or_, select

from uniwiz.core.job import Job
from uniwiz.core.payment import Payment
from uniwiz.core.values import utc_now
from uniwiz.db import tables
from uniwiz.db.store import StoreError
from uniwiz.types import JOB_STATUSES, USER_STATUSES
from uniwiz.users.registered import RegisteredUser

logger = logging.getLogger(__name__)

ADMIN_PERMISSIONS: frozenset[str] = frozenset(
    {
        "manage_users",
        "view_all_users",
        "block_unblock_users",
        "verify_users",
        "delete_users",
        "manage_jobs",
        "view_all_jobs",
        "moderate_jobs",
        "manage_categories",
        "view_reports",
        "manage_site_settings",
        "view_analytics",
        "send_notifications",
        "manage_reviews",
        "export_data",
        "view_system_logs",
        "manage_payments",
        "access_admin_panel",
    }
)

REPORT_TYPES: tuple[str, ...] = ("user_activity", "job_performance", "revenue_analytics")


class Admin(RegisteredUser):
    role = "admin"

    def get_permissions(self) -> frozenset[str]:
        return ADMIN_PERMISSIONS

    def can_access(self, capability: str) -> bool:
        if self.is_blocked():
            return False
        return capability in ADMIN_PERMISSIONS

    def get_profile_data(self) -> dict[str, Any]:
        return {"role": self.role, "permissions": sorted(ADMIN_PERMISSIONS), "last_login": None}

    def get_dashboard_stats(self) -> dict[str, Any]:
        u, j, a, r = tables.users, tables.jobs, tables.job_applications, tables.company_reviews

        def counts(column, statement) -> dict[str, int]:
            return {row["key"]: int(row["total"]) for row in self._safe_select(statement.group_by(column))}

        roles = counts(u.c.role, select(u.c.role.label("key"), func.count(u.c.id).label("total")))
        user_flags = self._safe_select(
            select(
                func.coalesce(func.sum(case((u.c.status == "active", 1), else_=0)), 0).label("active"),
                func.coalesce(func.sum(case((u.c.status == "blocked", 1), else_=0)), 0).label("blocked"),
                func.coalesce(func.sum(case((u.c.is_verified.is_(False), 1), else_=0)), 0).label("unverified"),
            )
        )
        flags = user_flags[0] if user_flags else {}
        job_counts = counts(j.c.status, select(j.c.status.label("key"), func.count(j.c.id).label("total")))
        application_counts = counts(a.c.status, select(a.c.status.label("key"), func.count(a.c.id).label("total")))
        week_ago = utc_now() - timedelta(days=7)
        recent_activity = {
            "new_users": int(self._safe_scalar(select(func.count(u.c.id)).where(u.c.created_at >= week_ago))),
            "new_jobs": int(self._safe_scalar(select(func.count(j.c.id)).where(j.c.created_at >= week_ago))),
            "new_applications": int(self._safe_scalar(select(func.count(a.c.id)).where(a.c.applied_at >= week_ago))),
        }
        review_row = self._safe_select(
            select(func.count(r.c.id).label("total"), func.avg(r.c.rating).label("average")).where(r.c.status == "active")
        )
        reviews = review_row[0] if review_row else {}
        return {
            "total_students": roles.get("student", 0),
            "total_publishers": roles.get("publisher", 0),
            "total_admins": roles.get("admin", 0),
            "active_users": int(flags.get("active") or 0),
            "blocked_users": int(flags.get("blocked") or 0),
            "unverified_users": int(flags.get("unverified") or 0),
            "total_jobs": sum(job_counts.values()),
            "active_jobs": job_counts.get("active", 0),
            "pending_jobs": job_counts.get("pending", 0),
            "total_applications": sum(application_counts.values()),
            "pending_applications": application_counts.get("pending", 0),
            "accepted_applications": application_counts.get("accepted", 0),
            "recent_activity": recent_activity,
            "total_reviews": int(reviews.get("total") or 0),
            "average_rating": round(float(reviews["average"]), 1) if reviews.get("average") is not None else 0.0,
        }

    def get_all_users(self, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = filters or {}
        u = tables.users
        statement = select(u)
        for key in ("role", "status", "is_verified"):
            if filters.get(key) not in (None, ""):
                statement = statement.where(u.c[key] == filters[key])
        search = str(filters.get("search") or "").strip()
        if search:
            pattern = f"%{search}%"
            statement = statement.where(
                or_(
                    u.c.email.ilike(pattern),
                    u.c.first_name.ilike(pattern),
                    u.c.last_name.ilike(pattern),
                    u.c.company_name.ilike(pattern),
                )
            )
        statement = statement.order_by(u.c.created_at.desc(), u.c.id.desc())
        if filters.get("limit"):
            statement = statement.limit(int(filters["limit"]))
        return self._safe_select(statement)

    def update_user_status(self, user_id: int, status: str) -> bool | str:
        if status not in USER_STATUSES:
            return "Invalid status"
        if user_id == self.id:
            return "Cannot modify your own status"
        try:
            updated = self.store.update("users", {"status": status, "updated_at": utc_now()}, {"id": user_id})
        except StoreError:
            logger.exception("User status update failed user_id=%s", user_id)
            return "An error occurred while updating the user status"
        if not updated:
            return "User not found"

        message = (
            "Your account has been blocked by an administrator"
            if status == "blocked"
            else "Your account has been unblocked"
        )
        self.notifier.notify(user_id, "account_status", message, "/profile")
        return True

    def update_user_verification(self, user_id: int, verified: bool) -> bool | str:
        now = utc_now()
        try:
            updated = self.store.update(
                "users",
                {"is_verified": verified, "email_verified_at": now if verified else None, "updated_at": now},
                {"id": user_id},
            )
        except StoreError:
            logger.exception("User verification update failed user_id=%s", user_id)
            return "An error occurred while updating the user verification"
        if not updated:
            return "User not found"

        message = (
            "Your account has been verified by an administrator"
            if verified
            else "Your account verification has been revoked"
        )
        self.notifier.notify(user_id, "account_verification", message, "/profile")
        return True

    def delete_user(self, user_id: int) -> bool | str:
        if user_id == self.id:
            return "Cannot delete your own account"
        try:
            if not self.store.exists("users", {"id": user_id}):
                return "User not found"
            owned_jobs = [row["id"] for row in self.store.select(select(tables.jobs.c.id).where(tables.jobs.c.publisher_id == user_id))]
            with self.store.transaction():
                self.store.delete("job_applications", {"student_id": user_id})
                self.store.delete("company_reviews", {"student_id": user_id})
                self.store.delete("company_reviews", {"publisher_id": user_id})
                self.store.delete("wishlist", {"student_id": user_id})
                self.store.delete("notifications", {"user_id": user_id})
                if owned_jobs:
                    self.store.delete("job_applications", {"job_id": owned_jobs})
                    self.store.delete("wishlist", {"job_id": owned_jobs})
                    self.store.update("payments", {"job_id": None}, {"job_id": owned_jobs})
                self.store.update("payments", {"student_id": None}, {"student_id": user_id})
                self.store.delete("payments", {"publisher_id": user_id})
                self.store.delete("jobs", {"publisher_id": user_id})
                self.store.delete("student_profiles", {"user_id": user_id})
                self.store.delete("publisher_profiles", {"user_id": user_id})
                self.store.delete("users", {"id": user_id})
        except StoreError:
            logger.exception("User delete failed user_id=%s", user_id)
            return "An error occurred while deleting the user"
        logger.info("Admin %s deleted user_id=%s", self.id, user_id)
        return True

    def get_all_jobs(self, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return Job.get_all(self.store, filters)

    def update_job_status(self, job_id: int, status: str) -> bool | str:
        if status not in JOB_STATUSES:
            return "Invalid job status"
        job = Job.find_by_id(self.store, job_id, notifier=self.notifier)
        if job is None:
            return "Job not found"
        result = job.update_status(status)
        if result is not True:
            return result
        self.notifier.notify(
            job.publisher_id,
            "job_status_update",
            f"Your job posting '{job.title}' status has been changed to {status}",
            "/jobs",
        )
        return True

    def get_system_reports(self, report_type: str, *, days: int = 30) -> dict[str, Any] | str:
        if report_type not in REPORT_TYPES:
            return "Invalid report type"
        if report_type == "revenue_analytics":
            return Payment.get_system_stats(self.store)

        since = utc_now() - timedelta(days=days)
        if report_type == "user_activity":
            u = tables.users
            rows = self._safe_select(select(u.c.role, u.c.created_at).where(u.c.created_at >= since))
            by_day: dict[str, dict[str, int]] = {}
            for row in rows:
                day = row["created_at"].date().isoformat()
                by_day.setdefault(day, {}).setdefault(row["role"], 0)
                by_day[day][row["role"]] += 1
            return {"since": since, "registrations": [{"date": day, **by_day[day]} for day in sorted(by_day)]}

        j, a = tables.jobs, tables.job_applications
        rows = self._safe_select(
            select(
                j.c.id,
                j.c.title,
                j.c.status,
                j.c.vacancies,
                func.count(a.c.id).label("application_count"),
                func.coalesce(func.sum(case((a.c.status == "accepted", 1), else_=0)), 0).label("accepted_count"),
            )
            .select_from(j.outerjoin(a, a.c.job_id == j.c.id))
            .where(j.c.created_at >= since)
            .group_by(j.c.id, j.c.title, j.c.status, j.c.vacancies)
            .order_by(func.count(a.c.id).desc(), j.c.id)
        )
        return {"since": since, "jobs": rows}
