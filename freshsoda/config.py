from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    JWT_ISS: str = "freshsoda"
    JWT_EXP_MIN: int = 12*60
    TZ: str = "Asia/Kolkata"
    LOG_LEVEL: str = "INFO"

    # where the stock ledgers live: our own database, or a hosted REST backend
    DATA_BACKEND: Literal["sql", "rest"] = "sql"
    REST_URL: str | None = None
    REST_KEY: str | None = None
    REST_TIMEOUT: float | None = None  # None = wait until the call settles

    LOADOUT_NAV_DELAY_MS: int = 1500
    RECEIPT_TITLE: str = "FRESH SODA SALES"
    RECEIPT_FOOTER: str | None = None
    CURRENCY_SYMBOL: str = "₹"
    PRINT_AGENT_URL: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
