from .api import (
    adjust_stock,
    adjust_stock_by,
    cancel_stock,
    check_availability,
    decrease_stock,
    increase_stock,
)
from .exceptions import (
    ImmutableLogEntry,
    InsufficientStock,
    InvalidAdjustment,
    ProductNotFound,
    StockConflict,
    StockLedgerError,
)
from .types import AvailabilityReport, StockAvailability, StockChange, StockEventType, StockResult

__all__ = [
    "check_availability",
    "decrease_stock",
    "increase_stock",
    "cancel_stock",
    "adjust_stock",
    "adjust_stock_by",
    "StockChange",
    "StockResult",
    "StockAvailability",
    "AvailabilityReport",
    "StockEventType",
    "StockLedgerError",
    "InsufficientStock",
    "StockConflict",
    "ProductNotFound",
    "InvalidAdjustment",
    "ImmutableLogEntry",
]
