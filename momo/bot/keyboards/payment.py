from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..callbacks import PaymentCb, MenuCb


def awaiting_kb(payment_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="🧯 Stop waiting",
                    callback_data=PaymentCb(action="cancel", payment_id=payment_id).pack(),
                )
            ],
        ]
    )


def done_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔁 New payment", callback_data=MenuCb(action="pay").pack())],
            [InlineKeyboardButton(text="🏠 Menu", callback_data=MenuCb(action="home").pack())],
        ]
    )
