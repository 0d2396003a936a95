from aiogram.filters.callback_data import CallbackData


class MenuCb(CallbackData, prefix="menu"):
    action: str  # home/pay/history


class ProviderCb(CallbackData, prefix="prov"):
    provider: str  # mpesa_ke/mpesa_tz/...


class PaymentCb(CallbackData, prefix="pay"):
    action: str  # cancel
    payment_id: str
