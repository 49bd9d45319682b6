from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from .errors import InventoryConflict

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5

# (business_id, item) -> quantity on hand, or None when the business doesn't track stock
StockSource = Callable[[str, str], Optional[int]]


class StockLevel(str, Enum):
    SOLD_OUT = "sold_out"
    INSUFFICIENT = "insufficient"
    LOW = "low"
    OK = "ok"


@dataclass(frozen=True)
class InventoryCheckResult:
    name: str
    quantity: int
    in_stock: int
    level: StockLevel

    @property
    def available(self) -> bool:
        return self.level in (StockLevel.LOW, StockLevel.OK)

    @property
    def message(self) -> Optional[str]:
        if self.level is StockLevel.SOLD_OUT:
            return f"❌ {self.name} is SOLD OUT"
        if self.level is StockLevel.INSUFFICIENT:
            return f"❌ {self.name}: Only {self.in_stock} left (you ordered {self.quantity})"
        if self.level is StockLevel.LOW:
            return f"⚠️ {self.name}: Only {self.in_stock} left in stock"
        return None


@dataclass
class InventoryReport:
    results: List[InventoryCheckResult] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(not r.available for r in self.results)

    def issues(self) -> List[str]:
        return [r.message for r in self.results if not r.available and r.message]

    def warnings(self) -> List[str]:
        return [r.message for r in self.results if r.level is StockLevel.LOW and r.message]

    def rejection_text(self) -> str:
        text = "Sorry, we can't fulfill your order:\n\n" + "\n".join(self.issues())
        if self.warnings():
            text += "\n\n" + "\n".join(self.warnings())
        return text + "\n\nPlease adjust your order and try again."


def classify(name: str, quantity: int, in_stock: Optional[int]) -> InventoryCheckResult:
    if in_stock is None:
        # untracked stock: always available, never warned about
        return InventoryCheckResult(name, quantity, 0, StockLevel.OK)
    if in_stock < quantity:
        level = StockLevel.SOLD_OUT if in_stock <= 0 else StockLevel.INSUFFICIENT
        return InventoryCheckResult(name, quantity, max(0, in_stock), level)
    if in_stock <= LOW_STOCK_THRESHOLD:
        return InventoryCheckResult(name, quantity, in_stock, StockLevel.LOW)
    return InventoryCheckResult(name, quantity, in_stock, StockLevel.OK)


class InventoryValidator:
    """Classifies requested quantities against a business's stock levels.

    Any sold-out or insufficient line blocks the whole order; low stock is advisory.
    """

    def __init__(self, get_stock: StockSource):
        self._get_stock = get_stock

    def check(self, business_id: str, items: Iterable[Tuple[str, int]]) -> InventoryReport:
        report = InventoryReport()
        for name, quantity in items:
            report.results.append(classify(name, quantity, self._get_stock(business_id, name)))
        if report.blocked:
            logger.info("Inventory blocked order for %s: %s", business_id, report.issues())
        return report

    def ensure_available(self, business_id: str, items: Iterable[Tuple[str, int]]) -> InventoryReport:
        report = self.check(business_id, items)
        if report.blocked:
            raise InventoryConflict(report)
        return report
