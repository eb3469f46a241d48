"""
Exception hierarchy for stock_ledger.

This module defines all public exceptions raised by the library.

Expected business failures (insufficient stock, a lost race on the
conditional write) are converted into a failed `StockResult` by the ledger
operations; callers normally only see them when they use the store-level
helpers directly. Infrastructure failures raised by the store (database
unreachable, connection reset) are never wrapped and propagate unchanged.

Users are encouraged to catch `StockLedgerError` when they want to handle
all library-related failures, or more specific subclasses when they need
fine-grained control.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .types import StockAvailability


class StockLedgerError(Exception):
    """
    Base exception for all stock_ledger errors.

    Example
    -------
    >>> try:
    ...     await adjust_stock("sku-1", 10, "recount")
    ... except StockLedgerError as exc:
    ...     report(exc.code)
    """

    #: Stable error code for programmatic handling (also copied into StockResult.code).
    code: str = "stock_ledger_error"

    def __init__(self, message: str | None = None) -> None:
        if message is None:
            message = "An unspecified stock_ledger error occurred."
        super().__init__(message)


class InsufficientStock(StockLedgerError):
    """
    Raised when one or more requested lines cannot be covered by on-hand stock.

    The message names every insufficient product with requested vs. available
    quantities; the structured items are kept on `unavailable_items`.
    """

    code: str = "insufficient_stock"

    def __init__(
        self,
        unavailable_items: Sequence["StockAvailability"] = (),
        message: str | None = None,
    ) -> None:
        self.unavailable_items = list(unavailable_items)
        if message is None:
            message = "Insufficient stock: " + "; ".join(
                f"{item.product_name} (requested {item.requested}, available {item.in_stock})"
                for item in self.unavailable_items
            )
        super().__init__(message)


class StockConflict(StockLedgerError):
    """
    Raised when a conditional write matched zero rows.

    Another operation changed the quantity between our read and our write.
    The caller treats this exactly like insufficient stock: retry the whole
    batch or fail the line item.
    """

    code: str = "stock_conflict"

    def __init__(self, product_id: str, message: str | None = None) -> None:
        self.product_id = product_id
        if message is None:
            message = (
                f"Insufficient stock for product '{product_id}': "
                f"quantity changed concurrently, nothing was written"
            )
        super().__init__(message)


class ProductNotFound(StockLedgerError):
    """Raised when an administrative operation targets an unknown product."""

    code: str = "product_not_found"

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Product '{product_id}' not found")


class InvalidAdjustment(StockLedgerError):
    """Raised for a manual adjustment that can never be applied (bad target or reason)."""

    code: str = "invalid_adjustment"


class ImmutableLogEntry(StockLedgerError):
    """Raised when code tries to update or delete a stock log row."""

    code: str = "immutable_log_entry"
