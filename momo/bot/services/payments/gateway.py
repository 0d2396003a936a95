from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from .base import InitiationResult, PaymentRequest, PaymentStatus, StatusReport
from .errors import InitiationError, TransientPollError
from .phone import mask

log = logging.getLogger(__name__)


class HttpPaymentGateway:
    """
    Provider Gateway (наш backend), JSON over HTTPS:
      - POST {base}/payments/initiate
      - GET  {base}/payments/status/{payment_id}

    Авторизация (если задан токен): Authorization: Bearer <token>
    Сам статус двигает backend, мы его только опрашиваем.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str = "",
        initiate_timeout: float = 20.0,
        status_timeout: float = 2.5,
    ) -> None:
        self._base = base_url.rstrip("/") + "/"
        self._token = api_token.strip()
        self._initiate_timeout = aiohttp.ClientTimeout(total=initiate_timeout)
        # должен быть строго меньше интервала опроса, чтобы медленные запросы не копились
        self._status_timeout = aiohttp.ClientTimeout(total=status_timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def initiate(self, request: PaymentRequest) -> InitiationResult:
        url = f"{self._base}payments/initiate"
        log.info(
            "Initiating payment provider=%s phone=%s amount=%s",
            request.provider, mask(request.phone_number), request.amount,
        )

        try:
            async with aiohttp.ClientSession(timeout=self._initiate_timeout) as session:
                async with session.post(url, json=request.as_payload(), headers=self._headers()) as r:
                    text = await r.text()
                    data = _parse_json(text)

                    if r.status == 429:
                        raise InitiationError(
                            InitiationError.RATE_LIMITED,
                            _error_detail(data) or "Too many payment requests, try again later",
                            status_code=r.status,
                        )
                    if r.status >= 400:
                        raise InitiationError(
                            InitiationError.REJECTED,
                            _error_detail(data) or "Failed to initiate payment",
                            status_code=r.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise InitiationError(InitiationError.NETWORK, "Network error. Please try again.") from e

        if not isinstance(data, dict) or not data.get("payment_id"):
            raise InitiationError(
                InitiationError.INVALID_RESPONSE,
                f"Gateway initiate response missing payment_id: {text[:200]}",
            )

        return InitiationResult(
            payment_id=str(data["payment_id"]),
            status=PaymentStatus.parse(data.get("status") or PaymentStatus.INITIATED),
            message=str(data.get("message") or ""),
            amount=_as_int(data.get("amount"), request.amount),
            phone_number=str(data.get("phone_number") or request.phone_number),
            checkout_reference=_opt_str(data.get("checkout_reference") or data.get("checkout_request_id")),
            merchant_reference=_opt_str(data.get("merchant_reference") or data.get("merchant_request_id")),
        )

    async def get_status(self, payment_id: str) -> StatusReport:
        url = f"{self._base}payments/status/{quote(str(payment_id), safe='')}"

        try:
            async with aiohttp.ClientSession(timeout=self._status_timeout) as session:
                async with session.get(url, headers=self._headers()) as r:
                    text = await r.text()
                    if r.status >= 400:
                        raise TransientPollError(f"Gateway HTTP {r.status}: {text[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientPollError(f"Gateway status request failed: {type(e).__name__}") from e

        data = _parse_json(text)
        if not isinstance(data, dict) or not data.get("status"):
            raise TransientPollError(f"Gateway invalid status response: {text[:200]}")

        return StatusReport(
            payment_id=str(data.get("payment_id") or payment_id),
            status=PaymentStatus.parse(data["status"]),
            amount=_as_int(data.get("amount"), None),
            phone_number=_opt_str(data.get("phone_number")),
            provider=_opt_str(data.get("provider")),
            created_at=_opt_str(data.get("created_at")),
            completed_at=_opt_str(data.get("completed_at")),
            error_message=_opt_str(data.get("error_message")),
            external_reference=_opt_str(data.get("external_reference")),
        )


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text) if text else None
    except ValueError:
        return None


def _error_detail(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    detail = data.get("detail") or data.get("message")
    if isinstance(detail, str):
        return detail
    if detail:
        return str(detail)
    return None


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value is not None and value != "" else None


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
