from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from aiogram import Bot, html
from aiogram.utils.markdown import hbold, hcode

from ..db import repo
from ..keyboards.payment import done_kb
from .payments.base import PaymentStatus
from .payments.outcome import ICON_FAILURE, ICON_SUCCESS, Outcome, project

log = logging.getLogger(__name__)

_ICONS = {
    ICON_SUCCESS: "✅",
    ICON_FAILURE: "❌",
}


@dataclass
class PaymentScreen:
    """
    Сообщение в чате, где показываем ход оплаты.
    payment_id появляется только после инициации, поэтому колбэки ждут ready.
    """

    chat_id: int
    message_id: Optional[int] = None
    payment_id: Optional[str] = None
    ready: asyncio.Event = field(default_factory=asyncio.Event)


def render_outcome(outcome: Outcome, payment_id: str | None = None) -> str:
    icon = _ICONS.get(outcome.icon_kind, "⏳")
    # detail может прийти от провайдера как есть, поэтому всё экранируем
    text = f"{icon} {hbold(outcome.headline)}\n\n{html.quote(outcome.detail)}"
    if payment_id:
        text += f"\n\n🧾 <b>Payment:</b> {hcode(payment_id)}"
    return text


async def _show(bot: Bot, screen: PaymentScreen, text: str) -> None:
    if screen.message_id:
        try:
            await bot.edit_message_text(
                text=text,
                chat_id=screen.chat_id,
                message_id=screen.message_id,
                reply_markup=done_kb(),
            )
            return
        except Exception:
            log.warning("Could not edit message %s in chat %s, sending a new one", screen.message_id, screen.chat_id)

    await bot.send_message(screen.chat_id, text, reply_markup=done_kb())


def terminal_callbacks(bot: Bot, db_path: str, screen: PaymentScreen):
    """on_success / on_failure для PollingSession: пишем исход в ledger и показываем его в чате."""

    async def on_success(payment_id: str) -> None:
        await screen.ready.wait()
        await repo.finish_payment(db_path, payment_id, PaymentStatus.COMPLETED.value)
        await _show(bot, screen, render_outcome(project(PaymentStatus.COMPLETED), payment_id))

    async def on_failure(status, message: str) -> None:
        await screen.ready.wait()
        value = getattr(status, "value", status)
        await repo.finish_payment(db_path, screen.payment_id, value, message)
        await _show(bot, screen, render_outcome(project(status, message), screen.payment_id))

    return on_success, on_failure
