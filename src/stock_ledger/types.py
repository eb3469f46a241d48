from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Tuple, Union

UNKNOWN_PRODUCT_NAME = "Unknown Product"


class StockEventType(str, Enum):
    PURCHASE = "purchase"
    REFUND = "refund"
    MANUAL_ADJUST = "manual_adjust"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StockChange:
    """
    One requested change to a product's stock.

    Built by the caller (payment webhook, admin tooling) and consumed by the
    ledger's batch operations. Never persisted.
    """
    product_id: str
    quantity: int
    order_id: str | None = None
    payment_id: str | None = None
    notes: str | None = None


ItemLike = Union[StockChange, Tuple[str, int]]


def as_changes(items: Iterable[ItemLike]) -> list[StockChange]:
    """
    Normalize caller input: `StockChange` objects pass through,
    `(product_id, quantity)` pairs are wrapped.
    """
    changes: list[StockChange] = []
    for item in items:
        if isinstance(item, StockChange):
            changes.append(item)
        else:
            product_id, quantity = item
            changes.append(StockChange(product_id=product_id, quantity=quantity))
    return changes


@dataclass(frozen=True)
class StockRecord:
    """Current on-hand quantity of one product, as read from the store."""
    product_id: str
    name: str
    quantity: int


@dataclass(frozen=True)
class StockAvailability:
    product_id: str
    available: bool
    requested: int
    in_stock: int
    product_name: str


@dataclass(frozen=True)
class AvailabilityReport:
    available: bool
    unavailable_items: list[StockAvailability] = field(default_factory=list)
    all_items: list[StockAvailability] = field(default_factory=list)


@dataclass(frozen=True)
class StockResult:
    """
    Outcome of a ledger mutation.

    `success=False` is an expected business failure (insufficient stock, lost
    race). Infrastructure failures are raised, never reported here.
    """
    success: bool
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls) -> "StockResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, code: str | None = None) -> "StockResult":
        return cls(success=False, error=error, code=code)

    def __bool__(self) -> bool:
        return self.success


@dataclass(frozen=True)
class LogEntry:
    """
    Immutable description of one stock mutation, handed to the store's
    append-only log.

    Construction fails if `stock_after != stock_before + quantity_change`.
    """
    product_id: str
    event_type: StockEventType
    quantity_change: int
    stock_before: int
    stock_after: int
    order_id: str | None = None
    payment_id: str | None = None
    notes: str = ""
    created_by: str | None = None

    def __post_init__(self) -> None:
        if self.stock_after != self.stock_before + self.quantity_change:
            raise ValueError(
                f"stock log entry for '{self.product_id}' does not add up: "
                f"{self.stock_before} + {self.quantity_change} != {self.stock_after}"
            )
