from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..callbacks import ProviderCb, MenuCb
from ..services.payments.phone import PROVIDERS


def providers_kb(selected: str | None = None) -> InlineKeyboardMarkup:
    rows = []
    for p in PROVIDERS.values():
        mark = "🔘" if p.id == selected else "⚪️"
        rows.append(
            [
                InlineKeyboardButton(
                    text=f"{mark} {p.title} (+{p.country_code})",
                    callback_data=ProviderCb(provider=p.id).pack(),
                )
            ]
        )
    rows.append([InlineKeyboardButton(text="🏠 Menu", callback_data=MenuCb(action="home").pack())])
    return InlineKeyboardMarkup(inline_keyboard=rows)
