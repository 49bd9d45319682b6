import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.ordering.conversation import ConversationTracker, Stage
from app.ordering.types import ParsedItem, ParsedOrder


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _pending(table=None):
    return ParsedOrder(items=[ParsedItem("coffee", 2, Decimal("4.50"))], table_number=table)


def _tracker():
    clock = FakeClock()
    return ConversationTracker(timeout=timedelta(minutes=10), clock=clock), clock


def test_open_and_complete_with_name():
    tracker, _ = _tracker()
    session = tracker.open_session("+1555", "demo-cafe", _pending())
    assert session.stage is Stage.AWAITING_NAME

    completed = tracker.continue_session("+1555", "  Sam ")
    assert completed.customer_name == "Sam"
    assert completed.items == _pending().items
    assert tracker.get_session("+1555") is None


def test_name_and_table_in_one_reply():
    tracker, _ = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    completed = tracker.continue_session("+1555", "Sam, table 4")
    assert completed.customer_name == "Sam"
    assert completed.table_number == "4"


def test_comma_in_name_when_table_already_known():
    tracker, _ = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending(table="9"))
    completed = tracker.continue_session("+1555", "Sam, Jr")
    assert completed.customer_name == "Sam, Jr"
    assert completed.table_number == "9"


def test_blank_reply_keeps_session_open():
    tracker, _ = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    assert tracker.continue_session("+1555", "   ") is None
    assert tracker.get_session("+1555") is not None


def test_expired_session_is_same_as_no_session():
    tracker, clock = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    clock.advance(minutes=10, seconds=1)

    assert tracker.get_session("+1555") is None
    assert tracker.continue_session("+1555", "Sam") is None
    assert len(tracker) == 0


def test_activity_extends_the_session():
    tracker, clock = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    clock.advance(minutes=8)
    assert tracker.continue_session("+1555", "") is None
    clock.advance(minutes=8)
    assert tracker.get_session("+1555") is not None


def test_purge_expired():
    tracker, clock = _tracker()
    tracker.open_session("+1", "demo-cafe", _pending())
    clock.advance(minutes=5)
    tracker.open_session("+2", "demo-cafe", _pending())
    clock.advance(minutes=6)

    assert tracker.purge_expired() == 1
    assert tracker.get_session("+1") is None
    assert tracker.get_session("+2") is not None


def test_surname_comma_first_name_is_not_split():
    tracker, _ = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    completed = tracker.continue_session("+1555", "Smith, John")
    assert completed.customer_name == "Smith, John"
    assert completed.table_number is None


def test_bare_table_token_after_comma():
    tracker, _ = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    completed = tracker.continue_session("+1555", "Sam, 12b")
    assert completed.customer_name == "Sam"
    assert completed.table_number == "12b"


def test_name_is_remembered_for_the_same_business_until_timeout():
    tracker, clock = _tracker()
    tracker.open_session("+1555", "demo-cafe", _pending())
    tracker.continue_session("+1555", "Sam")

    assert tracker.remembered_customer_name("+1555", "demo-cafe") == "Sam"
    assert tracker.remembered_customer_name("+1555", "harbor-tacos") is None
    assert tracker.remembered_customer_name("+1999", "demo-cafe") is None

    clock.advance(minutes=10, seconds=1)
    assert tracker.remembered_customer_name("+1555", "demo-cafe") is None


@pytest.mark.anyio
async def test_sweeper_purges_abandoned_sessions():
    tracker, clock = _tracker()
    tracker.open_session("+1", "demo-cafe", _pending())
    tracker.remember_name("+2", "demo-cafe", "Jo")
    clock.advance(minutes=11)

    sweeper = asyncio.create_task(tracker.sweep_forever(interval=0.01))
    await asyncio.sleep(0.05)
    sweeper.cancel()
    with pytest.raises(asyncio.CancelledError):
        await sweeper

    assert len(tracker) == 0
    assert tracker._names == {}
