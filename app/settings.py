from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env locally (safe in prod too)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: str = "1") -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off"}


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./orders.db")
    menus_dir: str = os.getenv("MENUS_DIR", "").strip()
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    llm_enabled: bool = _env_flag("LLM_ENABLED")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "").strip()
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()

    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
    currency_default: str = os.getenv("CURRENCY", "USD")

    # minutes
    conversation_timeout_min: int = _env_int("CONVERSATION_TIMEOUT_MIN", 10)
    check_in_minutes: int = _env_int("CHECK_IN_MINUTES", 15)

    twilio_account_sid: str = os.getenv("TWILIO_ACCOUNT_SID", "").strip()
    twilio_auth_token: str = os.getenv("TWILIO_AUTH_TOKEN", "").strip()
    twilio_phone_number: str = os.getenv("TWILIO_PHONE_NUMBER", "").strip()

    smtp_host: str = os.getenv("SMTP_HOST", "").strip()
    smtp_port: int = _env_int("SMTP_PORT", 25)
    orders_email_from: str = os.getenv("ORDERS_EMAIL_FROM", "orders@localhost")

    payment_webhook_secret: str = os.getenv("PAYMENT_WEBHOOK_SECRET", "").strip()

    # merchant tokens
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_alg: str = os.getenv("JWT_ALG", "HS256")
    jwt_expire_min: int = _env_int("JWT_EXPIRE_MIN", 1440)  # 24h


settings = Settings()
