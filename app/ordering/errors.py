from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .inventory import InventoryReport


class OrderingError(Exception):
    """Base class for every recoverable failure in the ordering core."""


class ParseFailure(OrderingError):
    pass


class InventoryConflict(OrderingError):
    def __init__(self, report: "InventoryReport"):
        self.report = report
        super().__init__("; ".join(report.issues()))


class NotFound(OrderingError):
    pass


class OrderNotFound(NotFound):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class TenantNotFound(NotFound):
    def __init__(self, business_id: str):
        self.business_id = business_id
        super().__init__(f"Business {business_id} not found")


class InvalidTransition(OrderingError):
    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")


class PaymentMismatch(OrderingError):
    pass


class UpstreamFailure(OrderingError):
    """A payment or messaging collaborator failed; state is left as committed."""
