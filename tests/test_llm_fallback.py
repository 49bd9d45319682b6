import json
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.ai_intent import ORDER_SCHEMA, LLMOrderParser
from app.command_router import command_to_parsed_order
from app.db import make_engine
from app.ordering.menu import normalize_menu
from app.services import build_services

DEMO_MENU = {"coffee": "4.50", "sandwich": "8.99", "latte": "5.25", "bagel": "3.25"}
DEMO_STOCK = {"coffee": 50, "sandwich": 20, "latte": 30, "bagel": 10}

CUSTOMER = "+15557770000"
MENU = normalize_menu(DEMO_MENU)


class FakeLLM:
    def __init__(self, cmd=None, error=None):
        self.cmd = cmd or {}
        self.error = error
        self.calls = []

    async def __call__(self, message, menu):
        self.calls.append(message)
        if self.error:
            raise self.error
        return command_to_parsed_order(self.cmd, menu)


def _services(cfg, notifier, llm):
    svc = build_services(make_engine("sqlite://"), cfg, notifier=notifier, llm_parse=llm)
    svc.tenants.save("demo-cafe", "Demo Cafe", menu=DEMO_MENU, inventory=DEMO_STOCK)
    return svc


def test_command_maps_onto_menu_prices():
    parsed = command_to_parsed_order(
        {
            "items": [
                {"item_name": "Coffee", "qty": 2},
                {"item_name": "Bagels", "qty": 1},
                {"item_name": "unicorn steak", "qty": 4},
                {"item_name": "coffee", "qty": 9},
            ],
            "customer_name": " Sam ",
            "table_number": None,
        },
        MENU,
    )
    assert [(i.name, i.quantity, i.price) for i in parsed.items] == [
        ("coffee", 2, Decimal("4.50")),
        ("bagel", 1, Decimal("3.25")),
    ]
    assert parsed.customer_name == "Sam"
    assert parsed.table_number is None
    assert parsed.has_fuzzy_match


def test_command_with_bad_quantities():
    parsed = command_to_parsed_order({"items": [{"item_name": "latte", "qty": "lots"}, "junk"]}, MENU)
    assert [(i.name, i.quantity) for i in parsed.items] == [("latte", 1)]


@pytest.mark.anyio
async def test_llm_not_consulted_for_exact_orders(cfg, notifier):
    llm = FakeLLM()
    svc = _services(cfg, notifier, llm)
    await svc.desk.handle_inbound_message("demo-cafe", CUSTOMER, "2 coffee for Sam")
    assert llm.calls == []


@pytest.mark.anyio
async def test_llm_resolves_unclear_order(cfg, notifier):
    llm = FakeLLM({"items": [{"item_name": "sandwich", "qty": 2}], "customer_name": "Sam", "table_number": "3"})
    svc = _services(cfg, notifier, llm)

    result = await svc.desk.handle_inbound_message("demo-cafe", CUSTOMER, "couple of those toasted sarnies pls")

    assert llm.calls == ["couple of those toasted sarnies pls"]
    assert result.response_text.startswith("✓ I understood your order as:\n\nName: Sam | Table: 3\n\n2x sandwich ($17.98)")
    assert result.payload["items"] == [{"name": "sandwich", "quantity": 2, "price": 8.99}]


@pytest.mark.anyio
async def test_llm_failure_keeps_deterministic_result(cfg, notifier):
    llm = FakeLLM(error=RuntimeError("rate limited"))
    svc = _services(cfg, notifier, llm)

    result = await svc.desk.handle_inbound_message("demo-cafe", CUSTOMER, "3 sandwiches for Jo")

    assert llm.calls == ["3 sandwiches for Jo"]
    assert "3x sandwich ($26.97)" in result.response_text


@pytest.mark.anyio
async def test_openai_parser_uses_structured_output():
    captured = {}

    class Completions:
        async def create(self, **kwargs):
            captured.update(kwargs)
            content = json.dumps({"items": [{"item_name": "latte", "qty": 2}], "customer_name": None, "table_number": None})
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    client = SimpleNamespace(chat=SimpleNamespace(completions=Completions()))
    parser = LLMOrderParser(api_key="unused", model="test-model", client=client)

    parsed = await parser.parse("two lattes", MENU)

    assert [(i.name, i.quantity) for i in parsed.items] == [("latte", 2)]
    assert captured["model"] == "test-model"
    assert captured["response_format"] == {"type": "json_schema", "json_schema": ORDER_SCHEMA}
    assert json.loads(captured["messages"][1]["content"])["menu_items"] == list(MENU)
