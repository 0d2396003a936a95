from aiogram import Router, F
from aiogram.filters import CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, CallbackQuery

from ..callbacks import MenuCb
from ..keyboards.main_menu import main_menu_kb


router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext) -> None:
    await state.clear()
    text = (
        "📲 <b>Welcome!</b>\n\n"
        "Pay with M-Pesa, MTN MoMo or Airtel Money right from this chat.\n"
        "👇 Choose an action:"
    )
    await message.answer(text, reply_markup=main_menu_kb())


@router.callback_query(MenuCb.filter(F.action == "home"))
async def back_home(call: CallbackQuery, state: FSMContext) -> None:
    await call.answer()
    await state.clear()
    await call.message.answer("🏠 <b>Main menu</b>\n\n👇 Choose an action:", reply_markup=main_menu_kb())
