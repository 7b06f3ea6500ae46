# tipbot/core/config.py
from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Core ---
    BOT_TOKEN: str | None = None
    DATABASE_URL: str

    WEBHOOK_URL: str | None = None
    BOT_ADMINS: str | None = None  # comma separated telegram ids

    # --- Wallet ---
    # root secret for every derived account (index 0 = admin pool)
    ADMIN_WALLET_MNEMONIC: str | None = None

    # --- Blockchain (Base) ---
    BASE_RPC_URL: str | None = None
    CHAIN_ID: int = 8453
    USDC_CONTRACT_ADDRESS: str | None = None
    TOKEN_NAME: str = "USD Coin"
    TOKEN_VERSION: str = "2"
    EXPLORER_TX_URL: str = "https://basescan.org/tx/"

    REQUIRED_CONFIRMATIONS: int = 1
    CONFIRMATION_TIMEOUT_SECONDS: int = 120
    # below this the pool cannot pay gas for relaying a sweep
    MIN_RELAY_GAS_WEI: int = 20_000_000_000_000

    # --- Tipping defaults (used when seeding the settings row) ---
    DEFAULT_TIP_AMOUNT: Decimal = Decimal("0.01")
    DEFAULT_DAILY_LIMIT: int = 10


settings = Settings()
