import pytest

from app.ordering.errors import InventoryConflict
from app.ordering.inventory import LOW_STOCK_THRESHOLD, InventoryValidator, StockLevel, classify

STOCK = {"coffee": 1, "latte": 3, "bagel": 0, "sandwich": 40}


def _validator(stock=STOCK):
    return InventoryValidator(lambda business_id, item: stock.get(item))


def test_classify_levels():
    assert classify("bagel", 1, 0).level is StockLevel.SOLD_OUT
    assert classify("coffee", 3, 1).level is StockLevel.INSUFFICIENT
    assert classify("latte", 2, LOW_STOCK_THRESHOLD).level is StockLevel.LOW
    assert classify("sandwich", 2, LOW_STOCK_THRESHOLD + 1).level is StockLevel.OK


def test_untracked_stock_is_always_available():
    result = classify("anything", 99, None)
    assert result.available
    assert result.message is None


def test_insufficient_stock_message():
    report = _validator().check("demo-cafe", [("coffee", 3)])
    assert report.blocked
    assert report.issues() == ["❌ coffee: Only 1 left (you ordered 3)"]


def test_sold_out_message():
    report = _validator().check("demo-cafe", [("bagel", 1)])
    assert report.issues() == ["❌ bagel is SOLD OUT"]


def test_low_stock_is_only_a_warning():
    report = _validator().check("demo-cafe", [("latte", 2), ("sandwich", 1)])
    assert not report.blocked
    assert report.warnings() == ["⚠️ latte: Only 3 left in stock"]


def test_one_blocked_line_blocks_the_whole_order():
    report = _validator().check("demo-cafe", [("sandwich", 1), ("coffee", 2)])
    assert report.blocked
    assert len(report.issues()) == 1


def test_ensure_available_raises_with_report():
    validator = _validator()
    with pytest.raises(InventoryConflict) as first:
        validator.ensure_available("demo-cafe", [("coffee", 3), ("latte", 1)])
    with pytest.raises(InventoryConflict) as second:
        validator.ensure_available("demo-cafe", [("coffee", 3), ("latte", 1)])

    text = first.value.report.rejection_text()
    assert text == second.value.report.rejection_text()
    assert "❌ coffee: Only 1 left (you ordered 3)" in text
    assert "⚠️ latte: Only 3 left in stock" in text
    assert text.endswith("Please adjust your order and try again.")


def test_tenant_directory_stock(services):
    assert services.tenants.get_stock("demo-cafe", "coffee") == 50
    assert services.tenants.get_stock("demo-cafe", "unknown item") == 0

    services.tenants.set_stock("demo-cafe", "coffee", 1)
    assert services.tenants.get_stock("demo-cafe", "Coffee") == 1

    services.tenants.save("no-stock", "No Stock Diner", menu={"toast": "2.00"})
    assert services.tenants.get_stock("no-stock", "toast") is None
    assert not services.validator.check("no-stock", [("toast", 500)]).blocked
