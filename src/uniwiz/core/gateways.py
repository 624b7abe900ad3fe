from __future__ import annotations

import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from uniwiz.config import Settings, get_settings

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    pass


@dataclass(slots=True)
class GatewayResult:
    success: bool
    transaction_id: str | None = None
    message: str = ""


class ChargeRequest(Protocol):
    id: int | None
    amount: Decimal | None
    currency: str
    payment_method: str


def new_transaction_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20]}"


class PaymentGateway(ABC):
    name = "base"

    @abstractmethod
    def charge(self, payment: ChargeRequest, details: dict[str, Any] | None = None) -> GatewayResult:
        """Attempt the charge; raise GatewayError for transport-level failures."""


class StripeGateway(PaymentGateway):
    """Sandbox stand-in: accepts every charge and issues a stripe-style id."""

    name = "stripe"

    def charge(self, payment: ChargeRequest, details: dict[str, Any] | None = None) -> GatewayResult:
        logger.info("Sandbox stripe charge payment_id=%s amount=%s", payment.id, payment.amount)
        return GatewayResult(success=True, transaction_id=new_transaction_id("stripe"))


class PayPalGateway(PaymentGateway):
    """Sandbox stand-in: accepts every charge and issues a paypal-style id."""

    name = "paypal"

    def charge(self, payment: ChargeRequest, details: dict[str, Any] | None = None) -> GatewayResult:
        logger.info("Sandbox paypal charge payment_id=%s amount=%s", payment.id, payment.amount)
        return GatewayResult(success=True, transaction_id=new_transaction_id("paypal"))


class MockGateway(PaymentGateway):
    name = "mock"

    def __init__(self, success_rate: float = 0.8, rng: random.Random | None = None):
        self.success_rate = success_rate
        self.rng = rng or random.Random()

    def charge(self, payment: ChargeRequest, details: dict[str, Any] | None = None) -> GatewayResult:
        if self.rng.random() < self.success_rate:
            return GatewayResult(success=True, transaction_id=new_transaction_id("mock"))
        return GatewayResult(success=False, message="Mock payment failed (simulated failure)")


class GatewayPool:
    def __init__(self, settings: Settings | None = None, *, rng: random.Random | None = None):
        self.settings = settings or get_settings()
        self.rng = rng
        self._gateways: dict[str, PaymentGateway] = {}

    def register(self, gateway: PaymentGateway) -> None:
        self._gateways[gateway.name] = gateway

    def get(self, name: str | None) -> PaymentGateway:
        key = (name or "").strip().lower()
        if key in self._gateways:
            return self._gateways[key]
        if key not in {"stripe", "paypal"}:
            key = "mock"
        if key not in self._gateways:
            self._gateways[key] = self._build(key)
        return self._gateways[key]

    def _build(self, key: str) -> PaymentGateway:
        if key == "stripe":
            return StripeGateway()
        if key == "paypal":
            return PayPalGateway()
        return MockGateway(self.settings.mock_gateway_success_rate, self.rng)
