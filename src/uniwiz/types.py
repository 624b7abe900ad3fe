from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, field_validator

UserRole = Literal["visitor", "student", "publisher", "admin"]
UserStatus = Literal["active", "blocked"]
JobStatus = Literal["active", "inactive", "pending", "expired"]
ApplicationStatus = Literal["pending", "viewed", "accepted", "rejected"]
FeedbackStatus = Literal["active", "hidden", "deleted"]
PaymentStatus = Literal["pending", "processing", "completed", "failed", "cancelled", "refunded"]
PaymentMethod = Literal["credit_card", "debit_card", "paypal", "bank_transfer", "stripe"]
NotificationType = str
WishlistAction = Literal["added", "removed"]

USER_ROLES: tuple[str, ...] = ("visitor", "student", "publisher", "admin")
USER_STATUSES: tuple[str, ...] = ("active", "blocked")
JOB_STATUSES: tuple[str, ...] = ("active", "inactive", "pending", "expired")
APPLICATION_STATUSES: tuple[str, ...] = ("pending", "viewed", "accepted", "rejected")
FEEDBACK_STATUSES: tuple[str, ...] = ("active", "hidden", "deleted")
PAYMENT_STATUSES: tuple[str, ...] = (
    "pending",
    "processing",
    "completed",
    "failed",
    "cancelled",
    "refunded",
)
PAYMENT_METHODS: tuple[str, ...] = ("credit_card", "debit_card", "paypal", "bank_transfer", "stripe")


class NotificationPayload(BaseModel):
    user_id: int
    type: NotificationType
    message: str
    link: str = ""

    @field_validator("type", "message")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class ToggleResult(BaseModel):
    action: WishlistAction
    success: bool
    message: str
