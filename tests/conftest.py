"""Test configuration: isolated in-memory databases and a recording notifier."""
import os

# Must be set before app.settings is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LLM_ENABLED"] = "0"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["PAYMENT_WEBHOOK_SECRET"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""

import pytest

from app.db import make_engine
from app.notifier import RecordingNotifier
from app.services import build_services
from app.settings import Settings

DEMO_MENU = {
    "coffee": "4.50",
    "iced coffee": "5.00",
    "sandwich": "8.99",
    "latte": "5.25",
    "bagel": "3.25",
}
DEMO_STOCK = {
    "coffee": 50,
    "iced coffee": 10,
    "sandwich": 20,
    "latte": 3,
    "bagel": 0,
}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def cfg() -> Settings:
    return Settings(
        database_url="sqlite://",
        llm_enabled=False,
        openai_api_key="",
        twilio_account_sid="",
        public_base_url="https://orders.test",
        check_in_minutes=15,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def services(cfg, notifier):
    svc = build_services(make_engine("sqlite://"), cfg, notifier=notifier)
    svc.tenants.save(
        business_id="demo-cafe",
        name="Demo Cafe",
        menu=DEMO_MENU,
        inventory=DEMO_STOCK,
        phone_number="+15550001111",
        check_in_minutes=15,
    )
    yield svc
    svc.scheduler.shutdown()
