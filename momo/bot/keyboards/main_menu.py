from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..callbacks import MenuCb


def main_menu_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="📲 Pay with mobile money",
                    callback_data=MenuCb(action="pay").pack(),
                )
            ],
            [
                InlineKeyboardButton(
                    text="🧾 My payments",
                    callback_data=MenuCb(action="history").pack(),
                )
            ],
        ]
    )
