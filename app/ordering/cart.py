from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Tuple

from .types import ParsedItem


def cart_total(items: Iterable[ParsedItem]) -> Decimal:
    return sum((i.line_total for i in items), Decimal("0"))


def format_lines(items: Iterable[ParsedItem], currency_symbol: str = "$") -> List[str]:
    lines = []
    for i in items:
        line = f"{i.quantity}x {i.name} ({currency_symbol}{i.line_total:.2f})"
        if i.modifications:
            line += "\n   - " + ", ".join(i.modifications)
        lines.append(line)
    return lines


def build_summary(items: List[ParsedItem], currency_symbol: str = "$") -> Tuple[str, Decimal]:
    if not items:
        return ("Your order is empty.", Decimal("0"))

    total = cart_total(items)
    lines = format_lines(items, currency_symbol)
    return ("\n".join(lines) + f"\n\nTotal: {currency_symbol}{total:.2f}", total)
