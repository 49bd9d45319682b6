from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

# A tenant menu: canonical lower-cased item name -> unit price
Menu = Dict[str, Decimal]


@dataclass(frozen=True)
class ParsedItem:
    name: str
    quantity: int
    price: Decimal  # snapshot taken from the menu at parse time
    modifications: Tuple[str, ...] = ()  # "no onions", "extra cheese", ...

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "quantity": self.quantity, "price": float(self.price)}
        if self.modifications:
            out["modifications"] = list(self.modifications)
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ParsedItem":
        return cls(
            name=str(raw["name"]),
            quantity=int(raw["quantity"]),
            price=Decimal(str(raw["price"])),
            modifications=tuple(str(m) for m in raw.get("modifications") or ()),
        )


@dataclass
class ParsedOrder:
    items: List[ParsedItem] = field(default_factory=list)
    customer_name: Optional[str] = None
    table_number: Optional[str] = None
    has_fuzzy_match: bool = False
    error_message: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return sum((i.line_total for i in self.items), Decimal("0"))

    @property
    def is_valid(self) -> bool:
        return len(self.items) > 0
