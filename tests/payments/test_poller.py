import asyncio
import logging

import pytest

from conftest import BlockingGateway, FakeGateway

from momo.bot.services.payments.base import PaymentStatus, StatusReport
from momo.bot.services.payments.errors import TransientPollError
from momo.bot.services.payments.poller import (
    TIMED_OUT_MESSAGE,
    UNREACHABLE_MESSAGE,
    PollingSession,
)

PENDING = PaymentStatus.PENDING
PROCESSING = PaymentStatus.PROCESSING
COMPLETED = PaymentStatus.COMPLETED
FAILED = PaymentStatus.FAILED


def make_session(gateway, recorder, clock, payment_id="pay_1", **kwargs):
    kwargs.setdefault("interval", 3)
    return PollingSession(
        payment_id,
        gateway,
        on_success=recorder.on_success,
        on_failure=recorder.on_failure,
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


async def test_completes_on_third_tick_and_stops_polling(clock, recorder):
    gateway = FakeGateway([PENDING, PENDING, COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert gateway.status_calls == [0, 3, 6]
    assert recorder.successes == ["pay_1"]
    assert recorder.failures == []
    assert clock.now == 6
    assert session.status is COMPLETED
    assert not session.active


async def test_success_fires_once_after_fourth_tick(clock, recorder):
    gateway = FakeGateway([PENDING, PENDING, PROCESSING, COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert session.ticks == 4
    assert recorder.successes == ["pay_1"]
    # no sleep scheduled after the terminal tick
    assert clock.sleeps == [3, 3, 3]


async def test_terminal_failure_reports_provider_message(clock, recorder):
    gateway = FakeGateway(
        [PENDING, StatusReport(payment_id="pay_1", status="failed", error_message="Insufficient funds")],
        clock=clock,
    )
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert recorder.failures == [(FAILED, "Insufficient funds")]
    assert recorder.successes == []
    assert session.outcome.detail == "Insufficient funds"


async def test_terminal_failure_without_message_uses_generic_text(clock, recorder):
    gateway = FakeGateway([PaymentStatus.CANCELLED], clock=clock)
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert recorder.failures == [(PaymentStatus.CANCELLED, "Payment was cancelled")]


@pytest.mark.parametrize(
    "late",
    [
        COMPLETED,
        FAILED,
        PENDING,
        PROCESSING,
        PaymentStatus.EXPIRED,
        "something-new",
    ],
)
async def test_terminal_state_is_final(clock, recorder, late):
    gateway = FakeGateway([COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock)
    session.start()
    await session.wait()
    generation = session.generation

    changed = session.apply(StatusReport(payment_id="pay_1", status=late))
    changed_tagged = session.apply(StatusReport(payment_id="pay_1", status=late), generation)

    assert changed is False
    assert changed_tagged is False
    assert session.status is COMPLETED
    assert recorder.calls == 1


async def test_budget_exhaustion_is_a_local_expiry(clock, recorder):
    gateway = FakeGateway([PENDING], clock=clock)
    session = make_session(gateway, recorder, clock, max_duration=10)

    session.start()
    await session.wait()

    assert gateway.status_calls == [0, 3, 6, 9]
    assert recorder.failures == [(PaymentStatus.EXPIRED, TIMED_OUT_MESSAGE)]
    assert session.status is PaymentStatus.EXPIRED


async def test_tick_budget(clock, recorder):
    gateway = FakeGateway([PROCESSING], clock=clock)
    session = make_session(gateway, recorder, clock, max_duration=0, max_ticks=2)

    session.start()
    await session.wait()

    assert len(gateway.status_calls) == 2
    assert recorder.failures == [(PaymentStatus.EXPIRED, TIMED_OUT_MESSAGE)]


async def test_single_transient_error_does_not_end_the_session(clock, recorder):
    gateway = FakeGateway([TransientPollError("timeout"), PENDING, COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert gateway.status_calls == [0, 3, 6]
    assert recorder.successes == ["pay_1"]


async def test_consecutive_error_budget_resets_on_success(clock, recorder):
    err = TransientPollError("boom")
    gateway = FakeGateway([err, err, PENDING, err, err, COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock, max_consecutive_errors=3)

    session.start()
    await session.wait()

    assert recorder.successes == ["pay_1"]
    assert session.consecutive_errors == 0


async def test_retry_budget_exhausted(clock, recorder, caplog):
    gateway = FakeGateway([TransientPollError("down")], clock=clock)
    session = make_session(gateway, recorder, clock, max_consecutive_errors=3)

    with caplog.at_level(logging.WARNING):
        session.start()
        await session.wait()

    assert len(gateway.status_calls) == 3
    assert recorder.failures == [(PaymentStatus.EXPIRED, UNREACHABLE_MESSAGE)]
    assert "gave up" in caplog.text


async def test_without_retry_budget_errors_run_until_expiry(clock, recorder):
    gateway = FakeGateway([TransientPollError("down")], clock=clock)
    session = make_session(gateway, recorder, clock, max_consecutive_errors=0, max_duration=9)

    session.start()
    await session.wait()

    assert gateway.status_calls == [0, 3, 6]
    assert recorder.failures == [(PaymentStatus.EXPIRED, TIMED_OUT_MESSAGE)]


async def test_unexpected_exception_is_treated_as_transient(clock, recorder):
    gateway = FakeGateway([ValueError("bad payload"), COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert recorder.successes == ["pay_1"]


async def test_unknown_status_keeps_polling(clock, recorder):
    gateway = FakeGateway(["on_hold", COMPLETED], clock=clock)
    session = make_session(gateway, recorder, clock)

    session.start()
    await session.wait()

    assert len(gateway.status_calls) == 2
    assert recorder.successes == ["pay_1"]


async def test_cancel_while_query_in_flight_fires_no_callbacks(recorder):
    gateway = BlockingGateway(COMPLETED)
    session = PollingSession(
        "pay_1", gateway, on_success=recorder.on_success, on_failure=recorder.on_failure, interval=3
    )

    session.start()
    await gateway.started.wait()
    assert session.in_flight
    generation = session.generation

    assert session.stop() is True
    assert not session.active
    assert session.generation == generation + 1

    gateway.release.set()
    await session.wait()
    for _ in range(5):
        await asyncio.sleep(0)

    assert recorder.calls == 0
    assert gateway.status_calls == ["pay_1"]
    assert session.status is PaymentStatus.INITIATED


async def test_stale_generation_response_is_discarded(recorder):
    gateway = BlockingGateway(COMPLETED)
    session = PollingSession(
        "pay_1", gateway, on_success=recorder.on_success, on_failure=recorder.on_failure, interval=3
    )
    session.start()
    await gateway.started.wait()

    stale = session.generation - 1
    assert session.apply(StatusReport(payment_id="pay_1", status=COMPLETED), stale) is False
    assert recorder.calls == 0

    assert session.apply(StatusReport(payment_id="pay_1", status=COMPLETED), session.generation) is True
    await session.wait()

    assert recorder.successes == ["pay_1"]
    assert not session.active


async def test_stop_is_idempotent_and_start_is_single_use(clock, recorder):
    session = make_session(FakeGateway([PENDING], clock=clock), recorder, clock)

    assert session.stop() is False
    session.start()
    with pytest.raises(RuntimeError):
        session.start()

    assert session.stop() is True
    assert session.stop() is False
    with pytest.raises(RuntimeError):
        session.start()
    await session.wait()
    assert recorder.calls == 0


async def test_terminal_initial_status_finishes_without_polling(clock, recorder):
    gateway = FakeGateway([PENDING], clock=clock)
    session = make_session(gateway, recorder, clock, initial_status="failed")

    session.start()
    await session.wait()

    assert gateway.status_calls == []
    assert recorder.failures == [(FAILED, "Payment failed")]


async def test_async_callbacks_are_awaited_once(clock):
    seen = []

    async def on_success(payment_id):
        await asyncio.sleep(0)
        seen.append(payment_id)

    async def on_failure(status, message):
        seen.append(status)

    session = PollingSession(
        "pay_9",
        FakeGateway([COMPLETED], clock=clock),
        on_success=on_success,
        on_failure=on_failure,
        clock=clock,
        sleep=clock.sleep,
    )
    session.start()
    await session.wait()

    assert seen == ["pay_9"]


async def test_callback_errors_are_logged_not_raised(clock, caplog):
    def on_success(payment_id):
        raise RuntimeError("ui gone")

    session = PollingSession(
        "pay_1",
        FakeGateway([COMPLETED], clock=clock),
        on_success=on_success,
        on_failure=lambda status, message: None,
        clock=clock,
        sleep=clock.sleep,
    )

    with caplog.at_level(logging.ERROR):
        session.start()
        await session.wait()

    assert session.status is COMPLETED
    assert "Terminal callback failed" in caplog.text


async def test_request_timeout_counts_as_transient_error(clock, recorder):
    class HangingGateway(FakeGateway):
        async def get_status(self, payment_id):
            self.status_calls.append(payment_id)
            await asyncio.Event().wait()

    gateway = HangingGateway()
    session = make_session(gateway, recorder, clock, request_timeout=0.01, max_consecutive_errors=2)

    session.start()
    await session.wait()

    assert len(gateway.status_calls) == 2
    assert recorder.failures == [(PaymentStatus.EXPIRED, UNREACHABLE_MESSAGE)]


def test_session_requires_a_lifetime_bound():
    with pytest.raises(ValueError):
        PollingSession("p", FakeGateway(), on_success=print, on_failure=print, max_duration=0, max_ticks=0)
    with pytest.raises(ValueError):
        PollingSession("p", FakeGateway(), on_success=print, on_failure=print, interval=3, request_timeout=3)


async def test_report_for_another_payment_is_ignored(recorder):
    gateway = BlockingGateway(COMPLETED)
    session = PollingSession(
        "pay_1", gateway, on_success=recorder.on_success, on_failure=recorder.on_failure, interval=3
    )
    session.start()
    await gateway.started.wait()

    assert session.apply(StatusReport(payment_id="pay_2", status=COMPLETED)) is False
    assert session.active
    assert recorder.calls == 0

    session.stop()
    gateway.release.set()
    await session.wait()
