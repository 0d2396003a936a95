from __future__ import annotations

import asyncio
from typing import Iterable, Optional

import pytest

from momo.bot.services.payments.base import InitiationResult, PaymentStatus, StatusReport
from momo.bot.services.payments.errors import InitiationError


class FakeClock:
    """Monotonic clock + sleep pair: sleep() moves time forward instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeGateway:
    """
    Scripted gateway. Each get_status() call consumes the next script item,
    the last item repeats forever. Items: status value, StatusReport or Exception.
    """

    def __init__(
        self,
        statuses: Iterable = (PaymentStatus.PENDING,),
        *,
        clock: Optional[FakeClock] = None,
        initiate_error: Optional[InitiationError] = None,
        initial_status=PaymentStatus.PENDING,
        payment_ids: Optional[list[str]] = None,
    ) -> None:
        self.script = list(statuses)
        self.clock = clock
        self.initiate_error = initiate_error
        self.initial_status = initial_status
        self.payment_ids = payment_ids
        self.initiated = []
        self.status_calls: list = []

    async def initiate(self, request):
        self.initiated.append(request)
        if self.initiate_error is not None:
            raise self.initiate_error
        if self.payment_ids:
            payment_id = self.payment_ids.pop(0)
        else:
            payment_id = f"pay_{len(self.initiated)}"
        return InitiationResult(
            payment_id=payment_id,
            status=self.initial_status,
            message="Check your phone",
            amount=request.amount,
            phone_number=request.phone_number,
        )

    async def get_status(self, payment_id: str) -> StatusReport:
        self.status_calls.append(self.clock() if self.clock else payment_id)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, StatusReport):
            return item
        return StatusReport(payment_id=payment_id, status=item)


class BlockingGateway(FakeGateway):
    """get_status() hangs until release is set, then reports `result`."""

    def __init__(self, result=PaymentStatus.COMPLETED, **kwargs) -> None:
        super().__init__((result,), **kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def get_status(self, payment_id: str) -> StatusReport:
        self.status_calls.append(payment_id)
        self.started.set()
        await self.release.wait()
        return StatusReport(payment_id=payment_id, status=self.script[0])


class GatedGateway(FakeGateway):
    """initiate() waits for `gate` before answering, as a slow gateway would."""

    def __init__(self, statuses=(PaymentStatus.PENDING,), **kwargs) -> None:
        super().__init__(statuses, **kwargs)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def initiate(self, request):
        self.entered.set()
        await self.gate.wait()
        return await super().initiate(request)


class Recorder:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.failures: list[tuple] = []

    def on_success(self, payment_id: str) -> None:
        self.successes.append(payment_id)

    def on_failure(self, status, message: str) -> None:
        self.failures.append((status, message))

    @property
    def calls(self) -> int:
        return len(self.successes) + len(self.failures)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
