from __future__ import annotations

import logging
from datetime import datetime, timedelta

from aiogram import Bot

from ..config import Settings
from ..db import repo
from ..services.flows import FlowRegistry
from ..services.outcomes import PaymentScreen, terminal_callbacks
from ..services.payments.base import PaymentStatus
from ..services.payments.poller import TIMED_OUT_MESSAGE

log = logging.getLogger(__name__)


def _polling_horizon(settings: Settings) -> timedelta:
    if settings.POLL_MAX_DURATION_SECONDS > 0:
        return timedelta(seconds=settings.POLL_MAX_DURATION_SECONDS)
    return timedelta(seconds=settings.POLL_INTERVAL_SECONDS * settings.POLL_MAX_TICKS)


async def resume_unfinished_payments(bot: Bot, settings: Settings, flows: FlowRegistry) -> int:
    """
    После рестарта локальные сессии опроса потеряны. Что ещё в пределах лимита жизни,
    опрашиваем заново по payment_id, что старше, помечаем expired.
    Исход показываем новым сообщением (старое сообщение редактировать не пытаемся).
    """
    cutoff = (datetime.utcnow() - _polling_horizon(settings)).isoformat()

    expired = await repo.expire_unfinished_before(settings.db_path_abs, cutoff, TIMED_OUT_MESSAGE)
    if expired:
        log.info("Marked %s stale unfinished payments as expired", expired)

    rows = await repo.get_unfinished_payments(settings.db_path_abs, cutoff)
    for p in rows:
        screen = PaymentScreen(chat_id=p.chat_id, payment_id=p.payment_id)
        screen.ready.set()
        on_success, on_failure = terminal_callbacks(bot, settings.db_path_abs, screen)

        status = PaymentStatus.parse(p.status)
        if isinstance(status, PaymentStatus) and status.is_terminal:
            status = PaymentStatus.PENDING

        flows.for_chat(p.chat_id).resume(
            p.payment_id,
            on_success=on_success,
            on_failure=on_failure,
            initial_status=status,
        )

    if rows:
        log.info("Resumed polling for %s unfinished payments", len(rows))
    return len(rows)
