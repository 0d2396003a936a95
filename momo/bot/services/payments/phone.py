from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import ValidationError


_NON_DIGITS = re.compile(r"\D")
_INTL_ACCESS_PREFIX = "00"


@dataclass(frozen=True)
class Provider:
    id: str
    title: str
    country_code: str           # "254"
    leading_digits: str         # first digit(s) of the subscriber number: "17"
    subscriber_length: int      # without country code and trunk "0"
    currency: str
    max_amount: int
    trunk_prefix: str = "0"

    @property
    def canonical_length(self) -> int:
        return len(self.country_code) + self.subscriber_length

    @property
    def pattern(self) -> re.Pattern:
        return re.compile(
            rf"^{self.country_code}[{self.leading_digits}]\d{{{self.subscriber_length - 1}}}$"
        )


PROVIDERS: dict[str, Provider] = {
    "mpesa_ke": Provider(
        id="mpesa_ke", title="M-Pesa Kenya", country_code="254", leading_digits="17",
        subscriber_length=9, currency="KES", max_amount=250_000,
    ),
    "mpesa_tz": Provider(
        id="mpesa_tz", title="M-Pesa Tanzania", country_code="255", leading_digits="67",
        subscriber_length=9, currency="TZS", max_amount=5_000_000,
    ),
    "mtn_ug": Provider(
        id="mtn_ug", title="MTN MoMo Uganda", country_code="256", leading_digits="7",
        subscriber_length=9, currency="UGX", max_amount=5_000_000,
    ),
    "airtel_ug": Provider(
        id="airtel_ug", title="Airtel Money Uganda", country_code="256", leading_digits="7",
        subscriber_length=9, currency="UGX", max_amount=5_000_000,
    ),
    "mtn_rw": Provider(
        id="mtn_rw", title="MTN MoMo Rwanda", country_code="250", leading_digits="7",
        subscriber_length=9, currency="RWF", max_amount=2_000_000,
    ),
}


def get_provider(provider_id: str) -> Provider:
    if provider_id not in PROVIDERS:
        raise ValidationError("provider", f"Unknown provider: {provider_id}")
    return PROVIDERS[provider_id]


def digits_only(raw: str | None) -> str:
    return _NON_DIGITS.sub("", raw or "")


def normalize(raw: str | None, provider_id: str) -> str:
    """
    Сырые символы -> каноничный номер "<код страны><абонентский номер>".

      0712345678      -> 254712345678  (trunk "0" меняем на код страны)
      712345678       -> 254712345678  (код страны дописываем)
      +254 712 345678 -> 254712345678
      00254712345678  -> 254712345678

    Всё, что не распознали, возвращаем как есть (только цифры) для отображения.
    Такой номер не пройдёт validate().
    """
    provider = get_provider(provider_id)
    digits = digits_only(raw)
    if not digits:
        return digits

    if digits.startswith(_INTL_ACCESS_PREFIX):
        intl = digits[len(_INTL_ACCESS_PREFIX):]
        if intl.startswith(provider.country_code):
            return intl
        return digits

    if digits.startswith(provider.country_code):
        return digits

    if digits.startswith(provider.trunk_prefix):
        return provider.country_code + digits[len(provider.trunk_prefix):]

    if digits[0] in provider.leading_digits:
        return provider.country_code + digits

    return digits


def validate(number: str | None, provider_id: str) -> bool:
    provider = PROVIDERS.get(provider_id)
    if provider is None or not number:
        return False
    return provider.pattern.fullmatch(number) is not None


@dataclass(frozen=True)
class PhoneNumber:
    raw: str
    provider: str

    @property
    def canonical(self) -> str:
        # всегда считаем заново из raw: при смене провайдера меняется код страны и шаблон
        return normalize(self.raw, self.provider)

    @property
    def is_valid(self) -> bool:
        return validate(self.canonical, self.provider)

    def with_provider(self, provider_id: str) -> "PhoneNumber":
        return PhoneNumber(raw=self.raw, provider=provider_id)


def format_display(number: str, provider_id: str) -> str:
    """254712345678 -> '+254 712 345 678'. Невалидные номера не трогаем."""
    if not validate(number, provider_id):
        return number
    provider = PROVIDERS[provider_id]
    national = number[len(provider.country_code):]
    groups = [national[i:i + 3] for i in range(0, len(national), 3)]
    return f"+{provider.country_code} {' '.join(groups)}"


def mask(number: str | None) -> str:
    if not number:
        return ""
    if len(number) <= 8:
        return "*" * len(number)
    return f"{number[:4]}{'*' * (len(number) - 8)}{number[-4:]}"
