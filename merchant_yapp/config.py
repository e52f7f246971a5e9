import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Settings(BaseModel):
    database_url: str = "sqlite:///./merchant_yapp.db"
    jwt_secret: str = ""
    indexer_url: str = "https://tx.yodl.me"
    receipt_base_url: str = "https://yodl.me/tx"
    poll_interval_ms: int = 250
    poll_max_attempts: int = 40
    required_chain_id: Optional[int] = None
    merchant_ens: str = ""
    merchant_address: str = ""
    merchant_root_ens: str = ""
    shop_name: str = "your shop"
    shop_telegram_handle: str = ""
    app_origin: str = "http://localhost:8000"
    confirmation_path: str = "/confirmation"
    payment_timeout_seconds: float = 300.0
    webhook_dispatch_delay_ms: int = 500
    memo_fingerprint_width: int = 6
    memo_truncation: str = "acronym"
    prefer_address_over_ens: bool = False
    log_level: str = "INFO"

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def webhook_dispatch_delay(self) -> float:
        return self.webhook_dispatch_delay_ms / 1000

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL") or defaults.database_url,
            jwt_secret=os.getenv("JWT_SECRET", ""),
            indexer_url=os.getenv("INDEXER_URL") or defaults.indexer_url,
            receipt_base_url=os.getenv("RECEIPT_BASE_URL") or defaults.receipt_base_url,
            poll_interval_ms=_int_env("POLL_INTERVAL_MS", defaults.poll_interval_ms),
            poll_max_attempts=_int_env("POLL_MAX_ATTEMPTS", defaults.poll_max_attempts),
            required_chain_id=_int_env("REQUIRED_CHAIN_ID", None),
            merchant_ens=os.getenv("MERCHANT_ENS", ""),
            merchant_address=os.getenv("MERCHANT_ADDRESS", ""),
            merchant_root_ens=os.getenv("MERCHANT_ROOT_ENS", ""),
            shop_name=os.getenv("SHOP_NAME") or defaults.shop_name,
            shop_telegram_handle=os.getenv("SHOP_TELEGRAM_HANDLE", ""),
            app_origin=os.getenv("APP_ORIGIN") or defaults.app_origin,
            confirmation_path=os.getenv("CONFIRMATION_PATH") or defaults.confirmation_path,
            payment_timeout_seconds=float(
                os.getenv("PAYMENT_TIMEOUT_SECONDS") or defaults.payment_timeout_seconds
            ),
            webhook_dispatch_delay_ms=_int_env(
                "WEBHOOK_DISPATCH_DELAY_MS", defaults.webhook_dispatch_delay_ms
            ),
            memo_fingerprint_width=_int_env(
                "MEMO_FINGERPRINT_WIDTH", defaults.memo_fingerprint_width
            ),
            memo_truncation=os.getenv("MEMO_TRUNCATION") or defaults.memo_truncation,
            prefer_address_over_ens=os.getenv("PREFER_ADDRESS_OVER_ENS", "").lower()
            in ("1", "true", "yes"),
            log_level=os.getenv("LOG_LEVEL") or defaults.log_level,
        )


settings = Settings.from_env()
