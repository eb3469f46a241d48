from __future__ import annotations

import json
from typing import Any

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from stock_ledger import (
    InvalidAdjustment,
    ProductNotFound,
    StockAvailability,
    StockChange,
    adjust_stock_by,
    check_availability,
)
from stock_ledger.handlers import on_payment_confirmed, on_refund

# None means the store configured in settings.STOCK_LEDGER["STORE"].
STORE = None


def _json(ok: bool, *, detail: str | None = None, status: int = 200, **extra: Any) -> JsonResponse:
    """
    Small helper to keep responses consistent across endpoints.
    """
    payload: dict[str, Any] = {"ok": ok, **extra}
    if detail:
        payload["detail"] = detail
    return JsonResponse(payload, status=status)


def _lines(body: dict[str, Any]) -> list[StockChange]:
    """
    Parse the `items` array. Raises ValueError for a missing or empty array,
    an item without `productId`, or a quantity that is not a positive integer.
    """
    items = body.get("items")
    if not isinstance(items, list) or not items:
        raise ValueError("items array is required")

    lines: list[StockChange] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("productId"):
            raise ValueError("every item needs a productId")
        quantity = item.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValueError(f"quantity for {item['productId']} must be a positive integer")
        lines.append(StockChange(product_id=str(item["productId"]), quantity=quantity))
    return lines


def _availability(i: StockAvailability) -> dict[str, Any]:
    return {
        "productId": i.product_id,
        "productName": i.product_name,
        "available": i.available,
        "requested": i.requested,
        "inStock": i.in_stock,
    }


def _body(request: HttpRequest) -> dict[str, Any] | None:
    try:
        body = json.loads(request.body or b"{}")
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@csrf_exempt  # demo-only: curl-friendly
@require_POST
async def check_stock(request: HttpRequest) -> HttpResponse:
    """
    Final availability check shown to the customer before payment.

    Advisory only: nothing is reserved, stock is committed when the payment
    is confirmed.
    """
    body = _body(request)
    if body is None:
        return _json(False, detail="invalid JSON body", status=400)
    try:
        lines = _lines(body)
    except ValueError as exc:
        return _json(False, detail=str(exc), status=400)

    report = await check_availability(lines, store=STORE)
    return _json(
        report.available,
        available=report.available,
        unavailableItems=[_availability(i) for i in report.unavailable_items],
        allItems=[_availability(i) for i in report.all_items],
    )


@csrf_exempt  # demo-only: curl-friendly
@require_POST
async def confirm_payment(request: HttpRequest, order_id: str) -> HttpResponse:
    """
    What a payment webhook does once the provider has captured the money.

    Insufficient stock at this point answers 409 with `needsReview`: the
    order is paid and has to be resolved by a person.
    """
    body = _body(request)
    if body is None or not body.get("paymentId"):
        return _json(False, detail="paymentId is required", status=400)
    try:
        lines = _lines(body)
    except ValueError as exc:
        return _json(False, detail=str(exc), status=400)

    handling = await on_payment_confirmed(
        order_id, str(body["paymentId"]), lines, store=STORE
    )
    if handling.needs_review:
        return _json(
            False, detail=handling.result.error, status=409,
            needsReview=True, code=handling.result.code,
        )
    return _json(True, needsReview=False)


@csrf_exempt  # demo-only: curl-friendly
@require_POST
async def refund(request: HttpRequest, order_id: str) -> HttpResponse:
    body = _body(request)
    if body is None or not body.get("paymentId"):
        return _json(False, detail="paymentId is required", status=400)
    try:
        lines = _lines(body)
    except ValueError as exc:
        return _json(False, detail=str(exc), status=400)

    await on_refund(order_id, str(body["paymentId"]), lines, store=STORE)
    return _json(True)


@csrf_exempt  # demo-only: curl-friendly
@require_POST
async def adjust_stock(request: HttpRequest, product_id: str) -> HttpResponse:
    """
    Admin correction: {"quantityChange": +10 | -5, "reason": "..."}.

    Authentication is the host project's business and is left out here.
    """
    body = _body(request)
    if body is None:
        return _json(False, detail="invalid JSON body", status=400)

    change = body.get("quantityChange")
    if not isinstance(change, int) or isinstance(change, bool):
        return _json(False, detail="quantityChange must be an integer (e.g. 10 or -5)", status=400)

    try:
        result = await adjust_stock_by(
            product_id,
            change,
            str(body.get("reason") or ""),
            created_by=body.get("adminUserId"),
            store=STORE,
        )
    except InvalidAdjustment as exc:
        return _json(False, detail=str(exc), status=400)
    except ProductNotFound as exc:
        return _json(False, detail=str(exc), status=404)

    if not result.success:
        return _json(False, detail=result.error, status=409, code=result.code)
    return _json(True)
