from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .nlp import basic_normalize
from .types import Menu

_CURRENCY_SYMBOLS = {"USD": "$", "GBP": "£", "EUR": "€"}


def currency_symbol(currency: Optional[str]) -> str:
    return _CURRENCY_SYMBOLS.get((currency or "USD").upper(), "")


def menu_key(name: str) -> str:
    """Canonical menu token: lower-cased, punctuation-free."""
    return basic_normalize(name)


def _to_price(raw: Any) -> Optional[Decimal]:
    if isinstance(raw, dict):
        raw = raw.get("price")
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return price if price > 0 else None


def normalize_menu(raw: Dict[str, Any]) -> Menu:
    """{name: price | {"price": ...}} -> Menu. Non-positive or unparsable prices are dropped."""
    menu: Menu = {}
    for name, value in (raw or {}).items():
        key = menu_key(str(name))
        price = _to_price(value)
        if key and price is not None:
            menu[key] = price
    return menu


def _iter_menu_items(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Supports both menu.json schemas:
    - top-level "items"
    - nested categories[*]["items"]
    """
    out: List[Dict[str, Any]] = []
    for c in (data.get("categories") or []):
        if isinstance(c, dict):
            out.extend(it for it in (c.get("items") or []) if isinstance(it, dict))
    out.extend(it for it in (data.get("items") or []) if isinstance(it, dict))
    return out


def menu_from_document(data: Dict[str, Any]) -> Menu:
    raw = {str(it.get("name") or ""): it.get("price") for it in _iter_menu_items(data)}
    return normalize_menu(raw)


def inventory_from_document(data: Dict[str, Any]) -> Dict[str, int]:
    inventory: Dict[str, int] = {}
    for it in _iter_menu_items(data):
        if it.get("stock") is None:
            continue
        key = menu_key(str(it.get("name") or ""))
        if key:
            inventory[key] = max(0, int(it["stock"]))
    return inventory


def format_menu(menu: Menu, currency: Optional[str] = None) -> str:
    if not menu:
        return "The menu is empty right now. Please check back later."
    sym = currency_symbol(currency)
    lines = [f"• {name} - {sym}{price:.2f}" for name, price in menu.items()]
    names = list(menu)
    example = f"2 {names[0]}, 1 {names[1]}" if len(names) > 1 else f"2 {names[0]}"
    return "Menu:\n" + "\n".join(lines) + f'\n\nText your order like: "{example}"'
