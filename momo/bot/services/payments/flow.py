from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from .base import PaymentGateway, PaymentRequest, PaymentStatus
from .errors import InitiationError, PaymentError
from .initiator import build_request, initiate
from .outcome import Outcome
from .phone import PhoneNumber, mask
from .poller import OnFailure, OnSuccess, PollingSession

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    interval: float = 3.0
    max_duration: float = 180.0
    max_ticks: int = 0
    max_consecutive_errors: int = 5
    request_timeout: Optional[float] = None


# Состояние потока оплаты: одно значение вместо набора флагов loading/status/error
@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Submitting:
    request: PaymentRequest


@dataclass(frozen=True)
class Awaiting:
    payment_id: str


@dataclass(frozen=True)
class Finished:
    payment_id: str
    outcome: Outcome


@dataclass(frozen=True)
class Rejected:
    error: PaymentError


FlowState = Union[Idle, Submitting, Awaiting, Finished, Rejected]


class PaymentFlow:
    """
    Владелец сессий опроса для одного экрана/пользователя.

    Точки входа:
      submit_payment(phone, amount, ...) -> payment_id   (ValidationError / InitiationError)
      cancel(payment_id)
    Плюс resume(), чтобы продолжить опрос уже выданного payment_id (после рестарта)
    и close(), когда экран закрыт.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        *,
        policy: Optional[PollPolicy] = None,
        block_duplicate_submissions: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._policy = policy or PollPolicy()
        self._block_duplicates = block_duplicate_submissions
        self._clock = clock
        self._sleep = sleep

        self._sessions: dict[str, PollingSession] = {}
        self._requests: dict[str, PaymentRequest] = {}
        self._pending: list[PaymentRequest] = []  # ждут ответа initiate
        self._epoch = 0  # +1 на каждый close()
        self.state: FlowState = Idle()

    def session(self, payment_id: str) -> Optional[PollingSession]:
        return self._sessions.get(payment_id)

    def active_sessions(self) -> list[PollingSession]:
        return [s for s in self._sessions.values() if s.active]

    @property
    def is_idle(self) -> bool:
        """Нет ни сессий опроса, ни инициаций в процессе."""
        return not self._sessions and not self._pending

    async def submit_payment(
        self,
        phone: PhoneNumber,
        amount,
        *,
        on_success: OnSuccess,
        on_failure: OnFailure,
    ) -> str:
        try:
            request = build_request(phone, amount)
            if self._block_duplicates:
                self._check_duplicate(request)
        except PaymentError as e:
            self.state = Rejected(e)
            raise

        # резервируем запрос до ответа gateway: двойное нажатие не должно уйти вторым списанием
        self._pending.append(request)
        epoch = self._epoch
        self.state = Submitting(request)
        try:
            result = await initiate(self._gateway, request)
        except PaymentError as e:
            self.state = Rejected(e)
            raise
        finally:
            self._pending.remove(request)

        if epoch != self._epoch:
            # экран закрыли, пока ждали gateway: сессию не открываем, колбэков не будет
            log.warning(
                "Flow closed during initiation, not polling payment_id=%s phone=%s",
                result.payment_id, mask(request.phone_number),
            )
            return result.payment_id

        if result.payment_id in self._sessions:
            error = InitiationError(
                InitiationError.INVALID_RESPONSE,
                f"Gateway returned payment_id {result.payment_id} that is already being polled",
            )
            self.state = Rejected(error)
            raise error

        session = self._open_session(result.payment_id, result.status, on_success, on_failure)
        self._requests[result.payment_id] = request
        self.state = Awaiting(result.payment_id)
        session.start()
        return result.payment_id

    def resume(
        self,
        payment_id: str,
        *,
        on_success: OnSuccess,
        on_failure: OnFailure,
        initial_status: "PaymentStatus | str" = PaymentStatus.PENDING,
    ) -> PollingSession:
        """Продолжить опрос ранее выданного payment_id. Вторую сессию на тот же id не создаём."""
        existing = self._sessions.get(payment_id)
        if existing is not None and existing.active:
            log.warning("Polling for payment_id=%s is already running, not starting another", payment_id)
            return existing

        session = self._open_session(payment_id, initial_status, on_success, on_failure)
        self.state = Awaiting(payment_id)
        session.start()
        return session

    def cancel(self, payment_id: str) -> bool:
        session = self._sessions.pop(payment_id, None)
        self._requests.pop(payment_id, None)
        if session is None:
            return False

        stopped = session.stop()
        if isinstance(self.state, Awaiting) and self.state.payment_id == payment_id:
            self.state = Idle()
        return stopped

    def close(self) -> None:
        self._epoch += 1
        for payment_id in list(self._sessions):
            self.cancel(payment_id)
        self.state = Idle()

    def _check_duplicate(self, request: PaymentRequest) -> None:
        if request in self._pending:
            log.warning(
                "Blocked duplicate submission phone=%s amount=%s (initiation in progress)",
                mask(request.phone_number), request.amount,
            )
            raise InitiationError(
                InitiationError.DUPLICATE,
                "A payment for this number and amount is already being sent",
            )
        for payment_id, pending in self._requests.items():
            session = self._sessions.get(payment_id)
            if session is not None and session.active and pending == request:
                log.warning(
                    "Blocked duplicate submission phone=%s amount=%s (in flight: %s)",
                    mask(request.phone_number), request.amount, payment_id,
                )
                raise InitiationError(
                    InitiationError.DUPLICATE,
                    "A payment for this number and amount is already awaiting confirmation",
                )

    def _open_session(
        self,
        payment_id: str,
        initial_status: "PaymentStatus | str",
        on_success: OnSuccess,
        on_failure: OnFailure,
    ) -> PollingSession:
        def _success(pid: str):
            self._finished(pid)
            return on_success(pid)

        def _failure(status, message: str):
            self._finished(payment_id)
            return on_failure(status, message)

        session = PollingSession(
            payment_id,
            self._gateway,
            on_success=_success,
            on_failure=_failure,
            interval=self._policy.interval,
            max_duration=self._policy.max_duration,
            max_ticks=self._policy.max_ticks,
            max_consecutive_errors=self._policy.max_consecutive_errors,
            request_timeout=self._policy.request_timeout,
            initial_status=initial_status,
            clock=self._clock,
            sleep=self._sleep,
        )
        self._sessions[payment_id] = session
        return session

    def _finished(self, payment_id: str) -> None:
        session = self._sessions.pop(payment_id, None)
        self._requests.pop(payment_id, None)
        if session is None:
            return
        if isinstance(self.state, Awaiting) and self.state.payment_id == payment_id:
            self.state = Finished(payment_id, session.outcome)
