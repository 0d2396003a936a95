from __future__ import annotations

from ...config import Settings
from .flow import PaymentFlow, PollPolicy
from .gateway import HttpPaymentGateway


def build_gateway(settings: Settings) -> HttpPaymentGateway:
    return HttpPaymentGateway(
        settings.GATEWAY_BASE_URL,
        api_token=settings.GATEWAY_API_TOKEN,
        initiate_timeout=settings.INITIATE_TIMEOUT_SECONDS,
        status_timeout=settings.STATUS_REQUEST_TIMEOUT_SECONDS,
    )


def poll_policy(settings: Settings) -> PollPolicy:
    return PollPolicy(
        interval=settings.POLL_INTERVAL_SECONDS,
        max_duration=settings.POLL_MAX_DURATION_SECONDS,
        max_ticks=settings.POLL_MAX_TICKS,
        max_consecutive_errors=settings.POLL_MAX_CONSECUTIVE_ERRORS,
    )


def build_flow(settings: Settings, gateway: HttpPaymentGateway | None = None) -> PaymentFlow:
    return PaymentFlow(
        gateway or build_gateway(settings),
        policy=poll_policy(settings),
        block_duplicate_submissions=settings.BLOCK_DUPLICATE_SUBMISSIONS,
    )
