from __future__ import annotations

import logging
from typing import Iterable, Protocol

from django.utils.module_loading import import_string

from .audit import record_stock_change
from .conf import get_setting
from .exceptions import (
    InsufficientStock,
    InvalidAdjustment,
    ProductNotFound,
    StockConflict,
)
from .types import (
    UNKNOWN_PRODUCT_NAME,
    AvailabilityReport,
    ItemLike,
    LogEntry,
    StockAvailability,
    StockChange,
    StockEventType,
    StockRecord,
    StockResult,
    as_changes,
)

logger = logging.getLogger(__name__)


class StockStore(Protocol):
    """
    Protocol describing the minimal store interface.

    A store keeps one current quantity per product and an append-only log.
    It must provide a per-row conditional write (`compare_and_set`); that is
    the only concurrency control the ledger relies on.
    """
    async def fetch(self, product_ids: Iterable[str]) -> dict[str, StockRecord]: ...
    async def compare_and_set(self, product_id: str, expected: int, new: int) -> bool: ...
    async def set_quantity(self, product_id: str, new: int) -> bool: ...
    async def append_log(self, entry: LogEntry) -> None: ...


# Resolved lazily from settings: the Django store imports models, which needs
# a ready app registry. Keyed by dotted path so a changed STORE setting takes
# effect.
_default_stores: dict[str, StockStore] = {}


def get_default_store() -> StockStore:
    path = get_setting("STORE")
    if path not in _default_stores:
        _default_stores[path] = import_string(path)()
    return _default_stores[path]


def _evaluate(
    changes: list[StockChange], records: dict[str, StockRecord]
) -> AvailabilityReport:
    # Lines for the same product draw from the same pool, in order.
    remaining = {pid: record.quantity for pid, record in records.items()}
    all_items: list[StockAvailability] = []
    unavailable: list[StockAvailability] = []

    for change in changes:
        record = records.get(change.product_id)

        if record is None:
            info = StockAvailability(
                product_id=change.product_id,
                available=False,
                requested=change.quantity,
                in_stock=0,
                product_name=UNKNOWN_PRODUCT_NAME,
            )
        else:
            left = remaining[change.product_id]
            info = StockAvailability(
                product_id=change.product_id,
                available=left >= change.quantity,
                requested=change.quantity,
                in_stock=record.quantity,
                product_name=record.name or change.product_id,
            )
            if info.available:
                remaining[change.product_id] = left - change.quantity

        all_items.append(info)
        if not info.available:
            unavailable.append(info)

    return AvailabilityReport(
        available=not unavailable,
        unavailable_items=unavailable,
        all_items=all_items,
    )


async def _apply_conditional(
    store: StockStore,
    product_id: str,
    product_name: str,
    delta: int,
    observed: int,
) -> tuple[int, int]:
    """
    Write `observed + delta` only if the row still holds `observed`.

    A write matching zero rows means someone else changed the row first. The
    product is then re-read and re-checked: if the new quantity cannot cover
    the change the line fails as insufficient, otherwise the write is retried
    against the fresh value, up to `CAS_RETRIES` times.

    Returns the (before, after) pair that was actually written.
    """
    retries = get_setting("CAS_RETRIES")
    before = observed

    for attempt in range(retries + 1):
        after = before + delta
        if after < 0:
            raise InsufficientStock(
                [
                    StockAvailability(
                        product_id=product_id,
                        available=False,
                        requested=-delta,
                        in_stock=before,
                        product_name=product_name,
                    )
                ]
            )

        if await store.compare_and_set(product_id, before, after):
            return before, after

        logger.info(
            "Lost conditional write on product=%s (expected %d, attempt %d)",
            product_id, before, attempt + 1,
        )
        if attempt == retries:
            break

        fresh = (await store.fetch([product_id])).get(product_id)
        if fresh is None:
            raise InsufficientStock(
                [
                    StockAvailability(
                        product_id=product_id,
                        available=False,
                        requested=-delta,
                        in_stock=0,
                        product_name=UNKNOWN_PRODUCT_NAME,
                    )
                ]
            )
        before = fresh.quantity

    raise StockConflict(
        product_id,
        f"Insufficient stock for {product_name}: quantity changed concurrently "
        f"(requested {-delta}, last observed {before})",
    )


async def check_availability(
    items: Iterable[ItemLike],
    *,
    store: StockStore | None = None,
) -> AvailabilityReport:
    """
    Check whether every requested line can be served from current stock.

    Pure read: all products are fetched in one batched call and nothing is
    written. A product id that does not exist counts as zero stock.

    When a product appears on several lines, each line is checked against
    what the earlier lines of the same batch left over; `in_stock` always
    reports the on-hand quantity.

    Parameters
    ----------
    items : iterable of StockChange or (product_id, quantity)
        Requested lines.

    store : StockStore | None
        Optional store override. Defaults to the configured store.

    Raises
    ------
    Exception
        Whatever the store raises when it cannot be read. That means
        availability is unknown, not that the items are unavailable.
    """
    st = store or get_default_store()
    changes = as_changes(items)
    records = await st.fetch([c.product_id for c in changes])
    return _evaluate(changes, records)


async def decrease_stock(
    items: Iterable[ItemLike],
    order_id: str,
    payment_id: str,
    *,
    store: StockStore | None = None,
) -> StockResult:
    """
    Commit stock to a confirmed sale.

    Call exactly once per confirmed payment. The ledger does not deduplicate
    by `payment_id`; that is the payment webhook's job.

    Steps
    -----
    1. Read current quantities for all lines (fresh, never from a cache).
    2. If any line is short, stop before writing anything.
    3. Apply products one at a time: all lines for a product are summed into
       a single conditional write against the quantity read in step 1. A
       write matching zero rows means another operation changed the stock
       first: that product is re-read and re-checked, and it fails as
       insufficient once the fresh quantity cannot cover the total (see
       `_apply_conditional`).
    4. Every applied line gets one `purchase` log entry.

    Products applied before a lost race (or before an infrastructure error)
    stay applied and logged; atomicity holds per product row, not across
    different products in the batch.

    Returns
    -------
    StockResult
        `success=True`, or `success=False` with an error naming the
        insufficient products and `code` set to `"insufficient_stock"` or
        `"stock_conflict"`. Money may already have been captured; deciding
        what happens to the order is up to the caller.
    """
    st = store or get_default_store()
    changes = as_changes(items)
    records = await st.fetch([c.product_id for c in changes])
    report = _evaluate(changes, records)

    # One conditional write per product: an order either gets all of its
    # lines for that product or none of them.
    totals: dict[str, int] = {}
    for change in changes:
        totals[change.product_id] = totals.get(change.product_id, 0) + change.quantity

    applied = 0
    try:
        if not report.available:
            raise InsufficientStock(report.unavailable_items)

        for product_id, total in totals.items():
            before, after = await _apply_conditional(
                st,
                product_id,
                records[product_id].name or product_id,
                -total,
                records[product_id].quantity,
            )
            applied += 1

            stock = before
            for change in changes:
                if change.product_id != product_id:
                    continue
                await record_stock_change(
                    st,
                    LogEntry(
                        product_id=product_id,
                        event_type=StockEventType.PURCHASE,
                        quantity_change=-change.quantity,
                        stock_before=stock,
                        stock_after=stock - change.quantity,
                        order_id=change.order_id or order_id,
                        payment_id=change.payment_id or payment_id,
                        notes=change.notes or get_setting("PURCHASE_NOTE"),
                    ),
                )
                stock -= change.quantity

            logger.info(
                "Stock decreased: product=%s %d->%d order=%s",
                product_id, before, after, order_id,
            )
    except (InsufficientStock, StockConflict) as exc:
        logger.warning(
            "Stock decrease rejected for order=%s payment=%s (%d of %d products applied): %s",
            order_id, payment_id, applied, len(totals), exc,
        )
        return StockResult.failed(str(exc), code=exc.code)

    return StockResult.ok()


async def _return_stock(
    changes: list[StockChange],
    order_id: str,
    payment_id: str | None,
    event_type: StockEventType,
    default_note: str,
    store: StockStore,
) -> StockResult:
    records = await store.fetch([c.product_id for c in changes])
    observed = {pid: record.quantity for pid, record in records.items()}

    for change in changes:
        if change.product_id not in observed:
            logger.warning(
                "Product %s not found, skipping %s for order=%s",
                change.product_id, event_type.value, order_id,
            )
            continue

        before = observed[change.product_id]
        after = before + change.quantity

        if not await store.set_quantity(change.product_id, after):
            # Row disappeared between read and write.
            logger.warning(
                "Product %s vanished, skipping %s for order=%s",
                change.product_id, event_type.value, order_id,
            )
            del observed[change.product_id]
            continue

        observed[change.product_id] = after

        await record_stock_change(
            store,
            LogEntry(
                product_id=change.product_id,
                event_type=event_type,
                quantity_change=change.quantity,
                stock_before=before,
                stock_after=after,
                order_id=change.order_id or order_id,
                payment_id=change.payment_id or payment_id,
                notes=change.notes or default_note,
            ),
        )
        logger.info(
            "Stock returned (%s): product=%s %d->%d order=%s",
            event_type.value, change.product_id, before, after, order_id,
        )

    return StockResult.ok()


async def increase_stock(
    items: Iterable[ItemLike],
    order_id: str,
    payment_id: str,
    *,
    store: StockStore | None = None,
) -> StockResult:
    """
    Put refunded quantities back into stock.

    Writes are unconditional: an increase has no capacity to run out of.
    Unknown products are skipped with a warning so they never block the rest
    of the refund. Store errors propagate.
    """
    return await _return_stock(
        as_changes(items),
        order_id,
        payment_id,
        StockEventType.REFUND,
        get_setting("REFUND_NOTE"),
        store or get_default_store(),
    )


async def cancel_stock(
    items: Iterable[ItemLike],
    order_id: str,
    payment_id: str | None = None,
    *,
    store: StockStore | None = None,
) -> StockResult:
    """Same as `increase_stock`, logged as `cancelled` (paid order cancelled before shipping)."""
    return await _return_stock(
        as_changes(items),
        order_id,
        payment_id,
        StockEventType.CANCELLED,
        get_setting("CANCEL_NOTE"),
        store or get_default_store(),
    )


async def _read_one(store: StockStore, product_id: str) -> StockRecord:
    records = await store.fetch([product_id])
    try:
        return records[product_id]
    except KeyError:
        raise ProductNotFound(product_id) from None


async def adjust_stock(
    product_id: str,
    new_quantity: int,
    note: str,
    *,
    created_by: str | None = None,
    store: StockStore | None = None,
) -> StockResult:
    """
    Set a product's stock to an absolute value (manual correction).

    The write is unconditional and the log entry records the difference to
    the quantity read just before. Manual adjustments have no order.

    Raises
    ------
    InvalidAdjustment
        If `new_quantity` is negative.
    ProductNotFound
        If the product does not exist.
    """
    if new_quantity < 0:
        raise InvalidAdjustment(
            f"Stock for '{product_id}' cannot be set to {new_quantity}"
        )

    st = store or get_default_store()
    record = await _read_one(st, product_id)

    if not await st.set_quantity(product_id, new_quantity):
        raise ProductNotFound(product_id)

    await record_stock_change(
        st,
        LogEntry(
            product_id=product_id,
            event_type=StockEventType.MANUAL_ADJUST,
            quantity_change=new_quantity - record.quantity,
            stock_before=record.quantity,
            stock_after=new_quantity,
            notes=note or "",
            created_by=created_by,
        ),
    )
    logger.info(
        "Stock adjusted: product=%s %d->%d by=%s",
        product_id, record.quantity, new_quantity, created_by,
    )
    return StockResult.ok()


async def adjust_stock_by(
    product_id: str,
    quantity_change: int,
    reason: str,
    *,
    created_by: str | None = None,
    store: StockStore | None = None,
) -> StockResult:
    """
    Apply a relative manual correction (+N for a delivery, -N for damaged goods).

    Unlike `adjust_stock` this goes through the conditional write, so it
    cannot push stock below zero even while sales are running. A decrease
    larger than the stock returns a failed result.
    """
    max_length = get_setting("MAX_REASON_LENGTH")
    if not reason or not reason.strip():
        raise InvalidAdjustment("Reason is required for stock adjustment")
    if len(reason) > max_length:
        raise InvalidAdjustment(f"Reason is too long (max {max_length} characters)")

    st = store or get_default_store()
    record = await _read_one(st, product_id)

    try:
        before, after = await _apply_conditional(
            st, product_id, record.name or product_id, quantity_change, record.quantity
        )
    except (InsufficientStock, StockConflict) as exc:
        logger.warning("Manual stock adjustment rejected for %s: %s", product_id, exc)
        return StockResult.failed(str(exc), code=exc.code)

    await record_stock_change(
        st,
        LogEntry(
            product_id=product_id,
            event_type=StockEventType.MANUAL_ADJUST,
            quantity_change=quantity_change,
            stock_before=before,
            stock_after=after,
            notes=reason.strip(),
            created_by=created_by,
        ),
    )
    logger.info(
        "Stock adjusted: product=%s %d->%d by=%s",
        product_id, before, after, created_by,
    )
    return StockResult.ok()
