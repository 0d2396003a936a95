from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Корень проекта (momo/bot/config.py -> project root)
    BASE_DIR: Path = Path(__file__).resolve().parents[2]

    # Telegram (нужен только боту, движку платежей не нужен)
    BOT_TOKEN: str = Field(default="")

    # Provider Gateway
    GATEWAY_BASE_URL: str = Field(default="http://localhost:8000/api/v1")
    GATEWAY_API_TOKEN: str = Field(default="")
    INITIATE_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0)

    # Опрос статуса
    POLL_INTERVAL_SECONDS: float = Field(default=3.0, gt=0)
    STATUS_REQUEST_TIMEOUT_SECONDS: float = Field(default=2.5, gt=0)  # строго меньше интервала
    POLL_MAX_DURATION_SECONDS: float = Field(default=180.0, ge=0)      # 0 = без лимита по времени
    POLL_MAX_TICKS: int = Field(default=0, ge=0)                       # 0 = без лимита по тикам
    POLL_MAX_CONSECUTIVE_ERRORS: int = Field(default=5, ge=0)          # 0 = не сдаёмся до лимита жизни

    # Блокировать повторную оплату того же номера/суммы, пока первая в процессе
    BLOCK_DUPLICATE_SUBMISSIONS: bool = Field(default=False)
    DEFAULT_PROVIDER: str = Field(default="mpesa_ke")

    # App
    DB_PATH: str = Field(default="momo.db")  # можно относительный, будет резолвиться от BASE_DIR
    LOG_LEVEL: str = Field(default="INFO")

    @model_validator(mode="after")
    def _check_polling(self) -> "Settings":
        if self.STATUS_REQUEST_TIMEOUT_SECONDS >= self.POLL_INTERVAL_SECONDS:
            raise ValueError("STATUS_REQUEST_TIMEOUT_SECONDS must be shorter than POLL_INTERVAL_SECONDS")
        if self.POLL_MAX_DURATION_SECONDS <= 0 and self.POLL_MAX_TICKS <= 0:
            raise ValueError("Set POLL_MAX_DURATION_SECONDS or POLL_MAX_TICKS, polling must be bounded")
        return self

    @property
    def db_path_abs(self) -> str:
        p = Path(self.DB_PATH)
        if not p.is_absolute():
            p = self.BASE_DIR / p
        return str(p.resolve())
