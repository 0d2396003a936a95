from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .base import PaymentStatus

ICON_SUCCESS = "success"
ICON_FAILURE = "failure"
ICON_PENDING = "pending"

AWAITING_HEADLINE = "Awaiting confirmation"


@dataclass(frozen=True)
class Outcome:
    status: "PaymentStatus | str | None"
    headline: str
    detail: str
    icon_kind: str
    error_code: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.icon_kind != ICON_PENDING


_PENDING_DETAILS = {
    PaymentStatus.INITIATED: "Sending the payment prompt to your phone...",
    PaymentStatus.PENDING: "Check your phone for the payment prompt and enter your PIN",
    PaymentStatus.PROCESSING: "Processing your payment...",
}

_FAILURE_DEFAULTS = {
    PaymentStatus.FAILED: ("Payment failed", "Payment failed"),
    PaymentStatus.CANCELLED: ("Payment cancelled", "Payment was cancelled"),
    PaymentStatus.EXPIRED: ("Payment expired", "Payment request expired"),
}


def project(status, error_message: Optional[str] = None) -> Outcome:
    """
    status (+ текст ошибки) -> то, что показываем пользователю.
    Тотальная функция: неизвестный статус даёт общий "в обработке", а не исключение.
    """
    parsed = PaymentStatus.parse(status) if status is not None else None

    if parsed is PaymentStatus.COMPLETED:
        return Outcome(parsed, "Payment successful!", "Payment completed successfully!", ICON_SUCCESS)

    if parsed in _FAILURE_DEFAULTS:
        headline, generic = _FAILURE_DEFAULTS[parsed]
        return Outcome(parsed, headline, error_message or generic, ICON_FAILURE, error_code=parsed.value)

    if parsed in _PENDING_DETAILS:
        return Outcome(parsed, AWAITING_HEADLINE, _PENDING_DETAILS[parsed], ICON_PENDING)

    return Outcome(parsed, AWAITING_HEADLINE, "Your payment is being processed...", ICON_PENDING)
