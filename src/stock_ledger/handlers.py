"""
Entry points for the collaborators that drive the ledger.

Payment webhooks call `on_payment_confirmed` once the provider has captured
the funds, and `on_refund` when it reports a refund. Order management calls
`on_cancel`. These helpers only translate the ledger's result into what the
order flow needs to know; signature checks, dedup of provider events and
order status updates belong to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .api import StockStore, cancel_stock, decrease_stock, increase_stock
from .types import ItemLike, StockResult

logger = logging.getLogger(__name__)


class PaymentOutcome(str, Enum):
    FULFILLED = "fulfilled"
    MANUAL_REVIEW = "manual_review"


@dataclass(frozen=True)
class PaymentHandling:
    outcome: PaymentOutcome
    result: StockResult

    @property
    def needs_review(self) -> bool:
        return self.outcome is PaymentOutcome.MANUAL_REVIEW


async def on_payment_confirmed(
    order_id: str,
    payment_id: str,
    lines: Iterable[ItemLike],
    *,
    store: StockStore | None = None,
) -> PaymentHandling:
    """
    Commit stock for a captured payment.

    If stock turns out to be insufficient the money is already taken, so the
    order must be flagged for manual handling instead of failing generically.
    """
    result = await decrease_stock(lines, order_id, payment_id, store=store)

    if not result.success:
        logger.warning(
            "Order %s paid (payment=%s) but stock could not be committed, "
            "requires manual review: %s",
            order_id, payment_id, result.error,
        )
        return PaymentHandling(PaymentOutcome.MANUAL_REVIEW, result)

    return PaymentHandling(PaymentOutcome.FULFILLED, result)


async def on_refund(
    order_id: str,
    payment_id: str,
    lines: Iterable[ItemLike],
    *,
    store: StockStore | None = None,
) -> StockResult:
    return await increase_stock(lines, order_id, payment_id, store=store)


async def on_cancel(
    order_id: str,
    lines: Iterable[ItemLike],
    *,
    payment_id: str | None = None,
    store: StockStore | None = None,
) -> StockResult:
    return await cancel_stock(lines, order_id, payment_id, store=store)
