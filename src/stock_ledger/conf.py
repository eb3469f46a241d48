from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    # Dotted path of the StockStore used when an operation gets no `store=`.
    "STORE": "stock_ledger.backends.django_orm.DjangoStockStore",
    "PURCHASE_NOTE": "Purchase for order",
    "REFUND_NOTE": "Refund processed",
    "CANCEL_NOTE": "Order cancelled",
    "MAX_REASON_LENGTH": 500,
    # How often a conditional write that lost a race is re-read and retried
    # before the line is reported as a conflict. 0 fails on the first loss.
    "CAS_RETRIES": 10,
}


def get_setting(name: str) -> Any:
    """
    Read one option from the `STOCK_LEDGER` dict in Django settings.

    Missing keys (or a missing dict, or unconfigured settings) fall back to
    `DEFAULTS`, so the ledger's pure helpers work without a Django project.
    """
    if name not in DEFAULTS:
        raise KeyError(
            f"stock_ledger: unknown setting '{name}'. Available: {sorted(DEFAULTS)}"
        )

    overrides: dict[str, Any] = {}
    if settings.configured:
        overrides = getattr(settings, "STOCK_LEDGER", None) or {}

    return overrides.get(name, DEFAULTS[name])
