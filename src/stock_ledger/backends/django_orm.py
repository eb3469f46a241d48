from __future__ import annotations

from typing import Iterable

from django.db.models import Q
from django.utils import timezone

from ..models import StockItem, StockLogEntry
from ..types import LogEntry, StockRecord


class DjangoStockStore:
    """
    Stock store backed by the Django ORM.

    Quantities live in `StockItem`, the audit trail in `StockLogEntry`. Every
    method is one database round-trip using Django's async ORM interface.

    Compare-and-swap
    ----------------
    `compare_and_set` issues

        UPDATE stock_ledger_stockitem
           SET quantity = :new, updated_at = now()
         WHERE product_id = :product_id AND quantity = :expected

    and reports success only when exactly one row matched. The database
    serializes conflicting writes to the same row, so of two writers that
    observed the same quantity only the first one to commit matches; the
    other sees zero rows and must not assume anything about the stock.

    Works on any database Django supports. No row locks or advisory locks are
    held between calls, so it is safe across processes and machines sharing
    the same database.

    Limitations
    -----------
    - Each call commits on its own (autocommit); a batch spanning several
      products is not atomic across products.
    - Nothing is cached: every `fetch` goes to the database.
    """

    async def fetch(self, product_ids: Iterable[str]) -> dict[str, StockRecord]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return {}

        records: dict[str, StockRecord] = {}
        rows = StockItem.objects.filter(product_id__in=ids).values(
            "product_id", "name", "quantity"
        )
        async for row in rows:
            records[row["product_id"]] = StockRecord(
                product_id=row["product_id"],
                name=row["name"],
                quantity=row["quantity"],
            )
        return records

    async def compare_and_set(self, product_id: str, expected: int, new: int) -> bool:
        updated = await StockItem.objects.filter(
            Q(product_id=product_id) & Q(quantity=expected)
        ).aupdate(quantity=new, updated_at=timezone.now())
        return updated == 1

    async def set_quantity(self, product_id: str, new: int) -> bool:
        updated = await StockItem.objects.filter(product_id=product_id).aupdate(
            quantity=new, updated_at=timezone.now()
        )
        return updated == 1

    async def append_log(self, entry: LogEntry) -> None:
        await StockLogEntry.objects.acreate(
            product_id=entry.product_id,
            order_id=entry.order_id,
            event_type=entry.event_type.value,
            quantity_change=entry.quantity_change,
            stock_before=entry.stock_before,
            stock_after=entry.stock_after,
            payment_id=entry.payment_id,
            notes=entry.notes or "",
            created_by=entry.created_by,
        )
