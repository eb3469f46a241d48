"""
Concurrent buyers racing for the same stock.

The in-memory store suspends between every read and write, so all
coroutines gathered here read the same starting quantity before any of them
writes. Only the conditional write decides who gets the goods.
"""

import asyncio

import pytest
from django.test import override_settings

from stock_ledger import decrease_stock, increase_stock

pytestmark = pytest.mark.asyncio


async def _buyers(store, count: int, quantity: int = 1):
    return await asyncio.gather(
        *(
            decrease_stock([("p1", quantity)], f"order-{i}", f"pay-{i}", store=store)
            for i in range(count)
        )
    )


async def test_two_buyers_last_unit(store):
    store.add("p1", 1, name="Rose Serum")

    results = await _buyers(store, 2)

    assert sorted(r.success for r in results) == [False, True]
    (loser,) = [r for r in results if not r.success]
    assert "Insufficient stock" in loser.error
    assert "Rose Serum" in loser.error
    assert store.quantity("p1") == 0


async def test_ten_buyers_five_units(store):
    store.add("p1", 5)

    results = await _buyers(store, 10)

    assert sum(r.success for r in results) == 5
    assert sum(not r.success for r in results) == 5
    assert store.quantity("p1") == 0


@pytest.mark.parametrize("start, buyers, quantity", [(3, 4, 1), (7, 5, 2), (1, 8, 1), (0, 3, 1)])
async def test_successful_decrements_never_exceed_stock(store, start, buyers, quantity):
    store.add("p1", start)

    results = await _buyers(store, buyers, quantity)

    sold = sum(quantity for r in results if r.success)
    assert sold <= start
    assert store.quantity("p1") == start - sold
    assert store.quantity("p1") >= 0
    assert len(store.log) == sum(r.success for r in results)


async def test_log_brackets_each_applied_decrement(store):
    store.add("p1", 4)

    await _buyers(store, 6)

    entries = store.entries_for("p1")
    assert [(e.stock_before, e.stock_after) for e in entries] == [(4, 3), (3, 2), (2, 1), (1, 0)]
    assert all(e.stock_after == e.stock_before + e.quantity_change for e in entries)


async def test_without_retries_a_lost_race_fails_immediately(store):
    store.add("p1", 5)

    with override_settings(STOCK_LEDGER={"CAS_RETRIES": 0}):
        results = await _buyers(store, 3)

    assert sum(r.success for r in results) == 1
    conflicts = [r for r in results if not r.success]
    assert {r.code for r in conflicts} == {"stock_conflict"}
    assert all("changed concurrently" in r.error for r in conflicts)
    assert store.quantity("p1") == 4


async def test_refunds_interleaved_with_purchases(store):
    store.add("p1", 2)

    await asyncio.gather(
        decrease_stock([("p1", 1)], "order-1", "pay-1", store=store),
        decrease_stock([("p1", 1)], "order-2", "pay-2", store=store),
    )
    await increase_stock([("p1", 1)], "order-1", "pay-1", store=store)
    result = await decrease_stock([("p1", 1)], "order-3", "pay-3", store=store)

    assert result.success is True
    assert store.quantity("p1") == 0


async def test_order_with_two_lines_takes_nothing_when_it_loses(store):
    store.add("p1", 2)

    single, double = await asyncio.gather(
        decrease_stock([("p1", 1)], "order-B", "pay-B", store=store),
        decrease_stock([("p1", 1), ("p1", 1)], "order-A", "pay-A", store=store),
    )

    assert single.success is True
    assert double.success is False
    assert double.code == "insufficient_stock"
    assert store.quantity("p1") == 1
    assert [(e.order_id, e.stock_before, e.stock_after) for e in store.log] == [("order-B", 2, 1)]


async def test_order_with_two_lines_is_one_conditional_write(store):
    store.add("p1", 5)
    writes = []
    original = store.compare_and_set

    async def counting(product_id, expected, new):
        writes.append((expected, new))
        return await original(product_id, expected, new)

    store.compare_and_set = counting

    result = await decrease_stock([("p1", 2), ("p1", 1)], "order-1", "pay-1", store=store)

    assert result.success is True
    assert writes == [(5, 2)]
    assert [(e.stock_before, e.stock_after) for e in store.log] == [(5, 3), (3, 2)]
