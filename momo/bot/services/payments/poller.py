from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from .base import PaymentGateway, PaymentStatus, StatusReport, is_terminal
from .errors import TransientPollError
from .outcome import Outcome, project

log = logging.getLogger(__name__)

OnSuccess = Callable[[str], Any]
OnFailure = Callable[["PaymentStatus | str", str], Any]

UNREACHABLE_MESSAGE = (
    "We could not confirm the payment status. "
    "If you approved the payment on your phone, check your balance before paying again."
)
TIMED_OUT_MESSAGE = "Payment was not confirmed in time"


# Результат одного тика: Ok(status) | TransientErr(count) | Exhausted
@dataclass(frozen=True)
class PollOk:
    report: StatusReport


@dataclass(frozen=True)
class PollTransientError:
    count: int
    error: str


@dataclass(frozen=True)
class PollExhausted:
    count: int
    error: str


PollResult = Union[PollOk, PollTransientError, PollExhausted]


class PollingSession:
    """
    Опрос статуса одного платежа до терминального состояния.

    - один запрос на тик, следующий тик планируем только после ответа (single-flight);
    - каждый запрос помечен generation; ответ от старой generation выбрасываем;
    - терминал / stop(): active=False, generation += 1, таймер снят, колбэк ровно один раз
      (после stop() ни одного);
    - жёсткий лимит жизни: max_duration секунд и/или max_ticks, по исчерпании локальный EXPIRED;
    - max_consecutive_errors подряд неудачных запросов -> тоже EXPIRED (0 = опрашиваем до лимита жизни).

    Сессией владеет тот, кто её создал. active/generation меняет только она сама.
    """

    def __init__(
        self,
        payment_id: str,
        gateway: PaymentGateway,
        *,
        on_success: OnSuccess,
        on_failure: OnFailure,
        interval: float = 3.0,
        max_duration: float = 180.0,
        max_ticks: int = 0,
        max_consecutive_errors: int = 5,
        request_timeout: Optional[float] = None,
        initial_status: "PaymentStatus | str" = PaymentStatus.INITIATED,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_duration <= 0 and max_ticks <= 0:
            raise ValueError("PollingSession needs max_duration or max_ticks to bound its lifetime")
        if request_timeout is not None and request_timeout >= interval:
            raise ValueError("request_timeout must be shorter than interval")

        self.payment_id = payment_id
        self.interval = interval
        self.max_duration = max_duration
        self.max_ticks = max_ticks
        self.max_consecutive_errors = max_consecutive_errors
        self.request_timeout = request_timeout

        self.status: "PaymentStatus | str" = PaymentStatus.parse(initial_status)
        self.error_message: Optional[str] = None

        self._gateway = gateway
        self._on_success = on_success
        self._on_failure = on_failure
        self._clock = clock
        self._sleep = sleep

        self._active = False
        self._stopped = False
        self._generation = 0
        self._ticks = 0
        self._consecutive_errors = 0
        self._started_at: Optional[float] = None
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self._callback_tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return (
            f"PollingSession(payment_id={self.payment_id!r}, status={self.status!r}, "
            f"active={self._active}, generation={self._generation}, ticks={self._ticks})"
        )

    @property
    def active(self) -> bool:
        return self._active

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def outcome(self) -> Outcome:
        return project(self.status, self.error_message)

    # -------------------------
    # lifecycle
    # -------------------------

    def start(self) -> None:
        if self._stopped or self._task is not None or self._active:
            raise RuntimeError(f"Polling session for {self.payment_id} was already started")

        self._active = True
        self._started_at = self._clock()

        # инициация могла сразу вернуть терминальный статус, опрашивать нечего
        if self.is_terminal:
            self._finish(self.status, self.error_message)
            return

        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll-payment-{self.payment_id}"
        )
        log.debug("Polling started payment_id=%s interval=%ss", self.payment_id, self.interval)

    def stop(self) -> bool:
        """
        Отмена (пользователем или при закрытии экрана). Синхронно, без запросов на сервер.
        Колбэки после этого не вызываются, даже если ответ уже летит.
        """
        if not self._active:
            return False

        self._deactivate()
        log.info("Polling cancelled payment_id=%s status=%s", self.payment_id, _status_str(self.status))
        return True

    async def wait(self) -> None:
        """Дождаться завершения цикла опроса (для тестов и graceful shutdown)."""
        if self._task is not None:
            await asyncio.wait([self._task])
        if self._callback_tasks:
            await asyncio.wait(list(self._callback_tasks))

    def _deactivate(self) -> None:
        self._active = False
        self._stopped = True
        self._generation += 1

        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # из колбэка внутри цикла себя не отменяем, цикл и так выйдет по active=False
        if task is not current:
            task.cancel()

    # -------------------------
    # state machine
    # -------------------------

    def apply(self, report: StatusReport, generation: Optional[int] = None) -> bool:
        """
        Применить ответ статуса. Возвращает True, если состояние изменилось.
        После терминала (или stop()) всегда no-op.
        """
        if generation is not None and generation != self._generation:
            log.debug(
                "Discarding stale status payment_id=%s generation=%s current=%s",
                self.payment_id, generation, self._generation,
            )
            return False

        if not self._active or self.is_terminal:
            return False

        if report.payment_id and report.payment_id != self.payment_id:
            log.warning(
                "Ignoring status for another payment payment_id=%s report=%s",
                self.payment_id, report.payment_id,
            )
            return False

        status = PaymentStatus.parse(report.status)

        if is_terminal(status):
            self._finish(status, report.error_message)
            return True

        changed = status != self.status
        self.status = status
        if changed:
            log.debug("Payment status payment_id=%s -> %s", self.payment_id, _status_str(status))
        return changed

    def _finish(self, status: "PaymentStatus | str", error_message: Optional[str]) -> None:
        self.status = status
        self.error_message = None if status is PaymentStatus.COMPLETED else error_message
        self._deactivate()

        log.info(
            "Payment finished payment_id=%s status=%s ticks=%s",
            self.payment_id, _status_str(status), self._ticks,
        )

        try:
            if status is PaymentStatus.COMPLETED:
                result = self._on_success(self.payment_id)
            else:
                result = self._on_failure(status, self.outcome.detail)
        except Exception:
            log.exception("Terminal callback failed payment_id=%s", self.payment_id)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Terminal callback failed payment_id=%s", self.payment_id, exc_info=exc)

    # -------------------------
    # loop
    # -------------------------

    def _budget_exhausted(self) -> bool:
        if self.max_ticks > 0 and self._ticks >= self.max_ticks:
            return True
        if self.max_duration > 0 and self._started_at is not None:
            return self._clock() - self._started_at >= self.max_duration
        return False

    async def _query(self) -> StatusReport:
        if self.request_timeout is None:
            return await self._gateway.get_status(self.payment_id)
        try:
            return await asyncio.wait_for(self._gateway.get_status(self.payment_id), self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransientPollError(f"Status request timed out after {self.request_timeout}s") from e

    async def _tick(self) -> PollResult:
        self._ticks += 1
        self._in_flight = True
        try:
            report = await self._query()
        except TransientPollError as e:
            return self._record_failure(str(e))
        except Exception as e:
            log.exception("Unexpected status query error payment_id=%s", self.payment_id)
            return self._record_failure(f"{type(e).__name__}: {e}")
        finally:
            self._in_flight = False

        self._consecutive_errors = 0
        return PollOk(report)

    def _record_failure(self, error: str) -> PollResult:
        self._consecutive_errors += 1
        count = self._consecutive_errors
        if self.max_consecutive_errors > 0 and count >= self.max_consecutive_errors:
            return PollExhausted(count=count, error=error)
        return PollTransientError(count=count, error=error)

    def _handle(self, result: PollResult, generation: int) -> None:
        if generation != self._generation or not self._active:
            log.debug("Discarding poll result for inactive session payment_id=%s", self.payment_id)
            return

        if isinstance(result, PollOk):
            self.apply(result.report, generation)
        elif isinstance(result, PollTransientError):
            log.warning(
                "Status poll failed payment_id=%s attempt=%s: %s",
                self.payment_id, result.count, result.error,
            )
        else:
            log.warning(
                "Status poll gave up payment_id=%s after %s consecutive errors: %s",
                self.payment_id, result.count, result.error,
            )
            self._finish(PaymentStatus.EXPIRED, UNREACHABLE_MESSAGE)

    async def _run(self) -> None:
        while self._active:
            if self._budget_exhausted():
                log.info("Polling budget exhausted payment_id=%s ticks=%s", self.payment_id, self._ticks)
                self._finish(PaymentStatus.EXPIRED, TIMED_OUT_MESSAGE)
                return

            generation = self._generation
            result = await self._tick()
            self._handle(result, generation)

            if not self._active:
                return
            await self._sleep(self.interval)


def _status_str(status) -> str:
    return getattr(status, "value", status)
