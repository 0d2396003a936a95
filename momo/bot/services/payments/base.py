from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class PaymentStatus(str, Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value) -> "PaymentStatus | str":
        """
        Статус с провайдера -> PaymentStatus.
        Неизвестные значения возвращаем как есть (строкой), их считаем нетерминальными.
        """
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            return raw


TERMINAL_STATUSES = frozenset(
    {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.EXPIRED,
    }
)


def is_terminal(status: "PaymentStatus | str | None") -> bool:
    return isinstance(status, PaymentStatus) and status.is_terminal


@dataclass(frozen=True)
class PaymentRequest:
    provider: str
    phone_number: str      # canonical, e.g. "254712345678"
    amount: int
    currency: str

    def as_payload(self) -> dict:
        return {
            "provider": self.provider,
            "phone_number": self.phone_number,
            "amount": self.amount,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class InitiationResult:
    payment_id: str
    status: "PaymentStatus | str"
    message: str
    amount: int
    phone_number: str

    checkout_reference: Optional[str] = None
    merchant_reference: Optional[str] = None


@dataclass(frozen=True)
class StatusReport:
    payment_id: str
    status: "PaymentStatus | str"

    amount: Optional[int] = None
    phone_number: Optional[str] = None
    provider: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None
    external_reference: Optional[str] = None


class PaymentGateway(Protocol):
    async def initiate(self, request: PaymentRequest) -> InitiationResult:
        """Raises InitiationError."""
        ...

    async def get_status(self, payment_id: str) -> StatusReport:
        """Raises TransientPollError."""
        ...
