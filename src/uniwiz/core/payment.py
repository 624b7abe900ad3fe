from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import extract, func, select

from uniwiz.config import get_settings
from uniwiz.core.entity import Entity
from uniwiz.core.gateways import GatewayError, GatewayPool, GatewayResult
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import as_datetime, as_decimal, money, utc_now
from uniwiz.db import tables
from uniwiz.db.store import DataStore, StoreError
from uniwiz.types import PAYMENT_METHODS, PAYMENT_STATUSES

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = frozenset({"pending", "processing", "failed"})
CENT = Decimal("0.01")


def is_whole_cents(amount: Decimal) -> bool:
    return amount == amount.quantize(CENT)


class Payment(Entity):
    table = tables.payments
    fields = (
        "id",
        "publisher_id",
        "student_id",
        "job_id",
        "amount",
        "currency",
        "payment_method",
        "payment_gateway",
        "transaction_id",
        "status",
        "payment_date",
        "description",
        "metadata",
        "created_at",
        "updated_at",
    )
    defaults = {"status": "pending", "description": ""}

    def __init__(
        self,
        store: DataStore,
        data: Mapping[str, Any] | None = None,
        *,
        notifier: Notifier | None = None,
        gateways: GatewayPool | None = None,
    ):
        self.gateways = gateways or GatewayPool()
        super().__init__(store, data, notifier=notifier)

    def coerce(self, name: str, value: Any) -> Any:
        if name == "amount":
            return as_decimal(value)
        if name == "payment_date":
            return as_datetime(value)
        if name == "metadata":
            return dict(value or {})
        if name == "currency":
            return (value or get_settings().default_currency).upper()
        if name == "payment_gateway":
            return value or get_settings().default_payment_gateway
        return value

    @staticmethod
    def validate(data: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        if not data.get("publisher_id"):
            errors.append("Publisher ID is required")
        amount = as_decimal(data.get("amount"))
        if amount is None:
            errors.append("Amount is required and must be numeric")
        elif amount <= 0:
            errors.append("Amount must be greater than 0")
        elif not is_whole_cents(amount):
            errors.append("Amount must have at most 2 decimal places")
        method = data.get("payment_method")
        if not method:
            errors.append("Payment method is required")
        elif method not in PAYMENT_METHODS:
            errors.append("Invalid payment method")
        return errors

    @classmethod
    def create(
        cls,
        store: DataStore,
        data: Mapping[str, Any],
        *,
        notifier: Notifier | None = None,
        gateways: GatewayPool | None = None,
    ) -> Payment | str:
        errors = cls.validate(data)
        if errors:
            return ", ".join(errors)

        payment = cls(
            store,
            {key: data.get(key) for key in cls.fields if key not in {"id", "status", "transaction_id", "payment_date"}},
            notifier=notifier,
            gateways=gateways,
        )
        try:
            if payment.job_id and not store.exists("jobs", {"id": payment.job_id}):
                return "Job not found"
            payment.id = store.insert(
                "payments",
                {
                    "publisher_id": payment.publisher_id,
                    "student_id": payment.student_id,
                    "job_id": payment.job_id,
                    "amount": payment.amount,
                    "currency": payment.currency,
                    "payment_method": payment.payment_method,
                    "payment_gateway": payment.payment_gateway,
                    "status": "pending",
                    "description": payment.description or "",
                    "metadata": payment.metadata,
                },
            )
        except StoreError:
            logger.exception("Payment create failed publisher_id=%s", data.get("publisher_id"))
            return "An error occurred while creating the payment"
        payment.refresh()
        return payment

    @classmethod
    def find_by_transaction_id(cls, store: DataStore, transaction_id: str) -> Payment | None:
        try:
            row = store.select_one(select(cls.table).where(cls.table.c.transaction_id == transaction_id))
        except StoreError:
            logger.exception("Payment lookup failed transaction_id=%s", transaction_id)
            return None
        return cls(store, row) if row else None

    @classmethod
    def get_all(cls, store: DataStore, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        filters = filters or {}
        p, j = cls.table, tables.jobs
        statement = select(p, j.c.title.label("job_title")).select_from(p.outerjoin(j, j.c.id == p.c.job_id))
        for key in ("publisher_id", "student_id", "job_id", "status", "payment_method"):
            if filters.get(key) not in (None, ""):
                statement = statement.where(p.c[key] == filters[key])
        statement = statement.order_by(p.c.created_at.desc(), p.c.id.desc())
        if filters.get("limit"):
            statement = statement.limit(int(filters["limit"]))
        try:
            return store.select(statement)
        except StoreError:
            logger.exception("Failed to list payments")
            return []

    @classmethod
    def get_by_publisher(cls, store: DataStore, publisher_id: int, limit: int = 50) -> list[dict[str, Any]]:
        return cls.get_all(store, {"publisher_id": publisher_id, "limit": limit})

    @classmethod
    def get_by_student(cls, store: DataStore, student_id: int, limit: int = 50) -> list[dict[str, Any]]:
        return cls.get_all(store, {"student_id": student_id, "limit": limit})

    def process_payment(self, details: dict[str, Any] | None = None) -> bool | str:
        if self.status != "pending":
            return f"Payment cannot be processed from status {self.status}"
        if not self._persist({"status": "processing"}):
            return "An error occurred while processing the payment"

        gateway = self.gateways.get(self.payment_gateway)
        try:
            result = gateway.charge(self, details)
        except GatewayError as exc:
            logger.warning("Gateway %s rejected payment_id=%s: %s", gateway.name, self.id, exc)
            result = GatewayResult(success=False, message=f"Payment processing failed: {exc}")

        if not result.success:
            metadata = {**self.metadata, "failure_reason": result.message}
            self._persist({"status": "failed", "metadata": metadata})
            return result.message

        completed = self._persist(
            {"status": "completed", "transaction_id": result.transaction_id, "payment_date": utc_now()}
        )
        if not completed:
            return "An error occurred while processing the payment"

        amount = f"{self.currency} {money(self.amount)}"
        self.notifier.notify(
            self.publisher_id,
            "payment_completed",
            f"Payment of {amount} has been processed successfully",
            "/payments",
        )
        self.notifier.notify(self.student_id, "payment_received", f"You have received a payment of {amount}", "/payments")
        return True

    def cancel(self) -> bool | str:
        if self.status == "completed":
            return "Cannot cancel completed payment"
        if self.status not in CANCELLABLE_STATUSES:
            return f"Cannot cancel a {self.status} payment"
        if not self._persist({"status": "cancelled"}):
            return "An error occurred while cancelling the payment"
        return True

    def refund(self, amount: Any = None) -> bool | str:
        if self.status != "completed":
            return "Can only refund completed payments"
        refund_amount = self.amount if amount is None else as_decimal(amount)
        if refund_amount is None or refund_amount <= 0:
            return "Refund amount must be greater than 0"
        if not is_whole_cents(refund_amount):
            return "Refund amount must have at most 2 decimal places"
        if refund_amount > self.amount:
            return "Refund amount cannot exceed payment amount"

        metadata = {
            **self.metadata,
            "refund_amount": money(refund_amount),
            "refund_date": utc_now().isoformat(),
        }
        if not self._persist({"status": "refunded", "metadata": metadata}):
            return "An error occurred while refunding the payment"

        formatted = f"{self.currency} {money(refund_amount)}"
        self.notifier.notify(self.publisher_id, "payment_refunded", f"Refund of {formatted} has been processed", "/payments")
        self.notifier.notify(
            self.student_id,
            "payment_refunded",
            f"A refund of {formatted} has been processed to your account",
            "/payments",
        )
        return True

    def is_completed(self) -> bool:
        return self.status == "completed"

    def is_refundable(self) -> bool:
        return self.status == "completed"

    def _persist(self, changes: dict[str, Any]) -> bool:
        try:
            self.store.update("payments", {**changes, "updated_at": utc_now()}, {"id": self.id})
        except StoreError:
            logger.exception("Payment update failed id=%s changes=%s", self.id, sorted(changes))
            return False
        for key, value in changes.items():
            setattr(self, key, self.coerce(key, value))
        return True

    @classmethod
    def get_publisher_stats(cls, store: DataStore, publisher_id: int, *, year: int | None = None) -> dict[str, Any]:
        p = cls.table
        year = year or utc_now().year
        try:
            status_rows = store.select(
                select(p.c.status, func.count(p.c.id).label("total"), func.sum(p.c.amount).label("amount"))
                .where(p.c.publisher_id == publisher_id)
                .group_by(p.c.status)
            )
            completed_rows = store.select(
                select(p.c.payment_date, p.c.amount).where(
                    p.c.publisher_id == publisher_id,
                    p.c.status == "completed",
                    extract("year", p.c.payment_date) == year,
                )
            )
        except StoreError:
            logger.exception("Payment stats query failed publisher_id=%s", publisher_id)
            status_rows, completed_rows = [], []

        by_status = {status: {"count": 0, "amount": Decimal("0")} for status in PAYMENT_STATUSES}
        for row in status_rows:
            by_status[row["status"]] = {"count": int(row["total"]), "amount": as_decimal(row["amount"]) or Decimal("0")}

        monthly: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for row in completed_rows:
            monthly[f"{row['payment_date']:%Y-%m}"] += as_decimal(row["amount"]) or Decimal("0")

        return {
            "total_payments": sum(item["count"] for item in by_status.values()),
            "total_amount": by_status["completed"]["amount"],
            "by_status": by_status,
            "monthly": [{"month": month, "amount": monthly[month]} for month in sorted(monthly)],
        }

    @classmethod
    def get_student_stats(cls, store: DataStore, student_id: int) -> dict[str, Any]:
        p = cls.table
        try:
            row = store.select_one(
                select(func.count(p.c.id).label("payment_count"), func.sum(p.c.amount).label("total_earned")).where(
                    p.c.student_id == student_id, p.c.status == "completed"
                )
            ) or {}
        except StoreError:
            logger.exception("Payment stats query failed student_id=%s", student_id)
            row = {}
        return {
            "total_earned": as_decimal(row.get("total_earned")) or Decimal("0"),
            "payment_count": int(row.get("payment_count") or 0),
        }

    @classmethod
    def get_system_stats(cls, store: DataStore) -> dict[str, Any]:
        p = cls.table
        total = func.count(p.c.id).label("total")
        try:
            status_rows = store.select(select(p.c.status, total).group_by(p.c.status))
            method_rows = store.select(select(p.c.payment_method, total).group_by(p.c.payment_method))
            revenue = store.scalar(select(func.sum(p.c.amount)).where(p.c.status == "completed"))
        except StoreError:
            logger.exception("System payment stats query failed")
            status_rows, method_rows, revenue = [], [], None
        by_status = {row["status"]: int(row["total"]) for row in status_rows}
        by_method = {row["payment_method"]: int(row["total"]) for row in method_rows}
        return {
            "total_transactions": sum(by_status.values()),
            "total_revenue": as_decimal(revenue) or Decimal("0"),
            "by_status": by_status,
            "by_method": by_method,
        }
