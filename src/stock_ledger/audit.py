from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .types import LogEntry

if TYPE_CHECKING:
    from .api import StockStore

logger = logging.getLogger(__name__)


async def record_stock_change(store: "StockStore", entry: LogEntry) -> bool:
    """
    Append one entry to the stock log.

    Called after the quantity write has committed, so a failed append must not
    undo it: the error is logged with its traceback and swallowed. The
    quantity stays correct, the audit trail has a gap.

    Returns
    -------
    bool
        True if the entry was written.
    """
    try:
        await store.append_log(entry)
    except Exception:
        logger.exception(
            "Failed to append stock log entry (%s product=%s order=%s %d->%d)",
            entry.event_type.value,
            entry.product_id,
            entry.order_id,
            entry.stock_before,
            entry.stock_after,
        )
        return False

    return True
