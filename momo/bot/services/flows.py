from __future__ import annotations

import logging
from typing import Optional

from ..config import Settings
from .payments.base import PaymentGateway
from .payments.factory import build_flow, build_gateway
from .payments.flow import PaymentFlow

log = logging.getLogger(__name__)


class FlowRegistry:
    """
    Один PaymentFlow на чат: чат считается "экраном", который владеет своими сессиями опроса.
    Gateway общий. Флоу без сессий и без инициаций в процессе выкидываем, заново создаётся по требованию.
    """

    def __init__(self, settings: Settings, gateway: PaymentGateway | None = None) -> None:
        self._settings = settings
        self._gateway = gateway or build_gateway(settings)
        self._flows: dict[int, PaymentFlow] = {}

    def __len__(self) -> int:
        return len(self._flows)

    def get(self, chat_id: int) -> Optional[PaymentFlow]:
        """Только поиск, новый флоу не создаёт."""
        return self._flows.get(chat_id)

    def for_chat(self, chat_id: int) -> PaymentFlow:
        self.prune()
        flow = self._flows.get(chat_id)
        if flow is None:
            flow = build_flow(self._settings, self._gateway)
            self._flows[chat_id] = flow
        return flow

    def prune(self) -> int:
        idle = [chat_id for chat_id, flow in self._flows.items() if flow.is_idle]
        for chat_id in idle:
            del self._flows[chat_id]
        if idle:
            log.debug("Dropped %s idle payment flows", len(idle))
        return len(idle)

    def close_chat(self, chat_id: int) -> None:
        flow = self._flows.pop(chat_id, None)
        if flow is not None:
            flow.close()

    def close_all(self) -> None:
        for chat_id in list(self._flows):
            self.close_chat(chat_id)
        log.info("All payment flows closed")
