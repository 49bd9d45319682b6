from __future__ import annotations

from typing import Any, Dict, List

from .ordering.menu import menu_key
from .ordering.nlp import singularize_phrase
from .ordering.types import Menu, ParsedItem, ParsedOrder


def _clean(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def command_to_parsed_order(cmd: Dict[str, Any], menu: Menu) -> ParsedOrder:
    """Map the LLM's JSON onto menu entries. Names the menu can't price are dropped;
    prices always come from the menu, never from the model."""
    by_singular = {singularize_phrase(k): k for k in menu}
    items: List[ParsedItem] = []
    seen = set()

    for raw in cmd.get("items") or []:
        if not isinstance(raw, dict):
            continue
        key = menu_key(str(raw.get("item_name") or ""))
        key = key if key in menu else by_singular.get(singularize_phrase(key))
        if not key or key in seen:
            continue
        try:
            qty = max(1, int(raw.get("qty") or 1))
        except (TypeError, ValueError):
            qty = 1
        seen.add(key)
        items.append(ParsedItem(name=key, quantity=qty, price=menu[key]))

    return ParsedOrder(
        items=items,
        customer_name=_clean(cmd.get("customer_name")),
        table_number=_clean(cmd.get("table_number")),
        has_fuzzy_match=True,
    )
