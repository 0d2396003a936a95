from __future__ import annotations

import logging

from aiogram import F, Router, html
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from aiogram.utils.markdown import hbold, hcode

from ..callbacks import MenuCb, PaymentCb, ProviderCb
from ..config import Settings
from ..db import repo
from ..keyboards.payment import awaiting_kb, done_kb
from ..keyboards.providers import providers_kb
from ..services.flows import FlowRegistry
from ..services.outcomes import PaymentScreen, render_outcome, terminal_callbacks
from ..services.payments.errors import InitiationError, ValidationError
from ..services.payments.initiator import build_request, validate_amount
from ..services.payments.phone import PROVIDERS, PhoneNumber, format_display

log = logging.getLogger(__name__)

router = Router()


class PayFlow(StatesGroup):
    entering_amount = State()
    choosing_provider = State()
    entering_phone = State()


def parse_amount(text: str | None):
    cleaned = (text or "").strip().replace(",", "").replace(" ", "")
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        return float(cleaned)
    except ValueError:
        raise ValidationError("amount", "Please enter the amount as a number, e.g. 150") from None


async def _ask_amount(message: Message, state: FSMContext, settings: Settings) -> None:
    await state.clear()
    await state.set_state(PayFlow.entering_amount)
    await state.update_data(provider=settings.DEFAULT_PROVIDER)
    await message.answer("💰 <b>Enter the amount to pay:</b>")


@router.message(Command("pay"))
async def cmd_pay(message: Message, state: FSMContext, settings: Settings) -> None:
    await _ask_amount(message, state, settings)


@router.callback_query(MenuCb.filter(F.action == "pay"))
async def menu_pay(call: CallbackQuery, state: FSMContext, settings: Settings) -> None:
    await call.answer()
    await _ask_amount(call.message, state, settings)


@router.message(PayFlow.entering_amount, F.text)
async def got_amount(message: Message, state: FSMContext) -> None:
    data = await state.get_data()
    provider_id = data["provider"]

    try:
        amount = validate_amount(parse_amount(message.text), provider_id)
    except ValidationError as e:
        await message.answer(f"⚠️ {html.quote(e.message)}")
        return

    await state.update_data(amount=amount)
    await state.set_state(PayFlow.choosing_provider)
    await message.answer("💳 <b>Choose your mobile money provider:</b>", reply_markup=providers_kb(provider_id))


@router.callback_query(ProviderCb.filter())
async def choose_provider(call: CallbackQuery, callback_data: ProviderCb, state: FSMContext) -> None:
    await call.answer()
    provider = PROVIDERS.get(callback_data.provider)
    if provider is None:
        return

    await state.update_data(provider=provider.id)
    await state.set_state(PayFlow.entering_phone)

    text = f"📱 {hbold(provider.title)}\n\nEnter your phone number, e.g. {hcode(f'0{provider.leading_digits[-1]}12 345 678')}"

    # номер уже вводили под другим провайдером, пересчитываем из исходного ввода
    raw = (await state.get_data()).get("raw_phone")
    if raw:
        phone = PhoneNumber(raw=raw, provider=provider.id)
        if phone.is_valid:
            text += f"\n\nOr send the same number again: {hcode(format_display(phone.canonical, provider.id))}"

    await call.message.answer(text)


@router.message(PayFlow.entering_phone, F.text)
async def got_phone(message: Message, state: FSMContext, settings: Settings, flows: FlowRegistry) -> None:
    data = await state.get_data()
    phone = PhoneNumber(raw=message.text, provider=data["provider"])
    amount = data["amount"]
    await state.update_data(raw_phone=message.text)

    try:
        request = build_request(phone, amount)
    except ValidationError as e:
        await message.answer(f"⚠️ {html.quote(e.message)}")
        return

    sent = await message.answer("⏳ <b>Sending payment request...</b>")
    screen = PaymentScreen(chat_id=message.chat.id, message_id=sent.message_id)
    on_success, on_failure = terminal_callbacks(message.bot, settings.db_path_abs, screen)

    flow = flows.for_chat(message.chat.id)
    try:
        payment_id = await flow.submit_payment(phone, amount, on_success=on_success, on_failure=on_failure)
    except ValidationError as e:
        await sent.edit_text(f"⚠️ {html.quote(e.message)}")
        return
    except InitiationError as e:
        await state.clear()
        await sent.edit_text(f"❌ <b>Payment was not started</b>\n\n{html.quote(e.message)}", reply_markup=done_kb())
        return

    screen.payment_id = payment_id
    await state.clear()

    try:
        await repo.record_payment(
            settings.db_path_abs,
            payment_id=payment_id,
            chat_id=message.chat.id,
            provider=request.provider,
            phone_number=request.phone_number,
            amount=request.amount,
            currency=request.currency,
            status="pending",
        )

        session = flow.session(payment_id)
        if session is not None and session.active:
            text = (
                f"{render_outcome(session.outcome, payment_id)}\n"
                f"📱 <b>Number:</b> {format_display(request.phone_number, request.provider)}\n"
                f"💰 <b>Amount:</b> {request.currency} {request.amount:,}"
            )
            await sent.edit_text(text, reply_markup=awaiting_kb(payment_id))
    except Exception:
        log.exception("Failed to record/show payment %s", payment_id)
    finally:
        screen.ready.set()


@router.callback_query(PaymentCb.filter(F.action == "cancel"))
async def cancel_payment(call: CallbackQuery, callback_data: PaymentCb, settings: Settings, flows: FlowRegistry) -> None:
    await call.answer()

    flow = flows.get(call.message.chat.id)
    if flow is None or not flow.cancel(callback_data.payment_id):
        return

    await repo.finish_payment(
        settings.db_path_abs, callback_data.payment_id, "cancelled", "Stopped waiting for confirmation"
    )
    await call.message.edit_text(
        "🧯 <b>Stopped waiting for confirmation.</b>\n\n"
        "If you already approved the payment on your phone, check <b>My payments</b> before paying again.",
        reply_markup=done_kb(),
    )


@router.callback_query(MenuCb.filter(F.action == "history"))
async def history(call: CallbackQuery, settings: Settings) -> None:
    await call.answer()
    payments = await repo.get_recent_payments(settings.db_path_abs, call.message.chat.id, limit=5)

    if not payments:
        await call.message.answer("🧾 <b>No payments yet.</b>", reply_markup=done_kb())
        return

    lines = ["🧾 <b>Your last payments:</b>", ""]
    for p in payments:
        lines.append(f"{hcode(p.payment_id)} · {p.currency} {p.amount:,} · {hbold(p.status)}")
    await call.message.answer("\n".join(lines), reply_markup=done_kb())
