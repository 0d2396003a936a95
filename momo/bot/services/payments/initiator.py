from __future__ import annotations

import logging

from .base import InitiationResult, PaymentGateway, PaymentRequest
from .errors import InitiationError, ValidationError
from .phone import PhoneNumber, get_provider, mask, validate

log = logging.getLogger(__name__)


def validate_amount(amount, provider_id: str) -> int:
    provider = get_provider(provider_id)

    # bool является подклассом int, его не принимаем
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError("amount", "Amount must be a number")
    if amount <= 0:
        raise ValidationError("amount", "Amount must be greater than zero")
    if int(amount) != amount:
        raise ValidationError("amount", "Amount must be a whole number")
    if amount > provider.max_amount:
        raise ValidationError(
            "amount", f"Maximum amount for {provider.title} is {provider.currency} {provider.max_amount:,}"
        )
    return int(amount)


def build_request(phone: PhoneNumber, amount) -> PaymentRequest:
    provider = get_provider(phone.provider)

    if not phone.raw or not phone.raw.strip():
        raise ValidationError("phone_number", "Phone number is required")

    canonical = phone.canonical
    if not validate(canonical, provider.id):
        raise ValidationError("phone_number", f"Please enter a valid {provider.title} phone number")

    return PaymentRequest(
        provider=provider.id,
        phone_number=canonical,
        amount=validate_amount(amount, provider.id),
        currency=provider.currency,
    )


async def initiate(gateway: PaymentGateway, request: PaymentRequest) -> InitiationResult:
    """
    Один запрос на списание. Без авторетраев: повторное нажатие даёт новый PaymentRequest.
    Ошибки (сеть / отказ / rate limit) пробрасываем вызывающему как InitiationError.
    """
    if not validate(request.phone_number, request.provider):
        raise ValidationError("phone_number", "Phone number is not valid for the selected provider")

    try:
        result = await gateway.initiate(request)
    except InitiationError as e:
        log.warning(
            "Payment initiation failed kind=%s status=%s provider=%s phone=%s: %s",
            e.kind, e.status_code, request.provider, mask(request.phone_number), e.message,
        )
        raise

    log.info("Payment initiated payment_id=%s status=%s", result.payment_id, getattr(result.status, "value", result.status))
    return result
