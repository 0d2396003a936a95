import logging

from aiogram import Router
from aiogram.types import ChatMemberUpdated

from ..services.flows import FlowRegistry

log = logging.getLogger(__name__)

router = Router()


@router.my_chat_member()
async def on_bot_member_update(event: ChatMemberUpdated, flows: FlowRegistry) -> None:
    """Бота заблокировали/удалили из чата: экрана больше нет, опрос по этому чату гасим."""
    if event.new_chat_member.status in ("left", "kicked"):
        flows.close_chat(event.chat.id)
        log.info("Closed payment flow for chat %s (status=%s)", event.chat.id, event.new_chat_member.status)
