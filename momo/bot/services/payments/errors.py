from __future__ import annotations

from typing import Optional


class PaymentError(RuntimeError):
    """Base class for everything the payment engine raises."""


class ValidationError(PaymentError):
    """Local checks failed, nothing was sent to the gateway."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class InitiationError(PaymentError):
    NETWORK = "network"
    REJECTED = "rejected"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    DUPLICATE = "duplicate"

    def __init__(self, kind: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"InitiationError(kind={self.kind!r}, status_code={self.status_code!r}, message={self.message!r})"


class TransientPollError(PaymentError):
    """One status query failed. The poller recovers on the next tick."""
