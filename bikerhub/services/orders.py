"""
Order persistence: placement, numbering, statistics and the sales report.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Optional

from loguru import logger
from pymongo.errors import DuplicateKeyError

from bikerhub import database
from bikerhub.config import settings
from bikerhub.errors import AppError, NotFoundError
from bikerhub.responses import skip_for
from bikerhub.schemas import (
    ContactAddress,
    Discount,
    Order,
    OrderItem,
    OrderNotes,
    OrderShipping,
    Payment,
    Product,
)
from bikerhub.services import products as product_service

# Discount codes: code -> (type, value)
DISCOUNT_CODES: dict[str, tuple[str, float]] = {
    "BIKER10": ("percentage", 10),
    "RIDE15": ("percentage", 15),
    "WELCOME25": ("fixed", 25.0),
}

DELIVERY_DAYS = {"standard": 5, "express": 2, "overnight": 1, "pickup": 0}

ORDER_NUMBER_ATTEMPTS = 5
NON_REVENUE_STATUSES = ["cancelled", "refunded"]


def resolve_discount(code: Optional[str], subtotal: float) -> Discount:
    code = (code or "").strip().upper()
    if not code:
        return Discount()
    if code not in DISCOUNT_CODES:
        raise AppError(f"Invalid discount code: {code}", 400)
    kind, value = DISCOUNT_CODES[code]
    amount = round(subtotal * value / 100, 2) if kind == "percentage" else float(value)
    return Discount(amount=amount, code=code, type=kind)


async def generate_order_number(now: Optional[datetime] = None, offset: int = 0) -> str:
    """BH + YYYYMMDD + 4-digit sequence from today's order count."""
    now = now or database.utcnow()
    day_start = datetime(now.year, now.month, now.day)
    day_end = day_start + timedelta(days=1)
    today_count = await database.count_documents(
        database.ORDERS, {"created_at": {"$gte": day_start, "$lt": day_end}}
    )
    return f"BH{now:%Y%m%d}{today_count + 1 + offset:04d}"


async def _insert_order(order: Order) -> Order:
    for attempt in range(ORDER_NUMBER_ATTEMPTS):
        order.order_number = await generate_order_number(offset=attempt)
        try:
            doc = await database.create_document(database.ORDERS, order.to_mongo())
        except DuplicateKeyError:
            logger.warning("Order number {} already taken, retrying", order.order_number)
            continue
        return Order.model_validate(doc)
    raise AppError("Could not allocate an order number", 500)


def _merge_lines(lines: list[tuple[str, int]]) -> "OrderedDict[str, int]":
    merged: OrderedDict[str, int] = OrderedDict()
    for product_id, quantity in lines:
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


async def place_order(
    customer_id: str,
    lines: list[tuple[str, int]],
    payment_method: str,
    billing_address: ContactAddress,
    shipping_address: ContactAddress,
    shipping_method: str = "standard",
    discount_code: Optional[str] = None,
    customer_note: Optional[str] = None,
    is_gift: bool = False,
    gift_message: Optional[str] = None,
) -> Order:
    if not lines:
        raise AppError("Order must contain at least one item", 400)

    items: list[OrderItem] = []
    reserved: list[tuple[Product, int]] = []
    for product_id, quantity in _merge_lines(lines).items():
        product = await product_service.get_product(product_id)
        if product.status != "active":
            raise AppError(f"Product {product.name} is not available", 400)
        if product.stock.track_inventory and product.stock.quantity < quantity:
            raise AppError(f"Insufficient stock for {product.name}", 400)
        price = product.current_price
        items.append(
            OrderItem(
                product=product.id,
                name=product.name,
                quantity=quantity,
                price=price,
                total=round(price * quantity, 2),
                seller=product.seller,
            )
        )
        reserved.append((product, quantity))

    subtotal = round(sum(item.total for item in items), 2)
    shipping_cost = 0.0
    if shipping_method != "pickup":
        shipping_cost = sum(p.shipping.shipping_cost for p, _ in reserved if not p.shipping.free_shipping)
    estimated = database.utcnow() + timedelta(days=DELIVERY_DAYS[shipping_method])

    order = Order(
        customer=customer_id,
        items=items,
        tax=round(subtotal * settings.TAX_RATE, 2),
        shipping=OrderShipping(cost=round(shipping_cost, 2), method=shipping_method, estimated_delivery=estimated),
        discount=resolve_discount(discount_code, subtotal),
        payment=Payment(method=payment_method),
        billing_address=billing_address,
        shipping_address=shipping_address,
        notes=OrderNotes(customer=customer_note),
        estimated_delivery=estimated,
        is_gift=is_gift,
        gift_message=gift_message,
    )
    order.recalculate_totals()
    order.update_status("pending", "Order placed", customer_id)

    saved = await _insert_order(order)

    # Not atomic with the insert above.
    for product, quantity in reserved:
        if product.stock.track_inventory:
            product.update_stock(quantity, "decrease")
        product.sold_count += quantity
        await product_service.save_product(product)

    logger.info("Order {} placed by {} for {:.2f}", saved.order_number, customer_id, saved.total)
    return saved


async def get_order(order_id: str) -> Order:
    doc = await database.get_document(database.ORDERS, order_id)
    if not doc:
        raise NotFoundError("Order not found")
    return Order.model_validate(doc)


async def save_order(order: Order) -> Order:
    order.recalculate_totals()
    doc = await database.update_document(database.ORDERS, order.id, order.to_mongo())
    return Order.model_validate(doc)


async def list_orders(
    filter_dict: dict[str, Any],
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Order], int]:
    direction = -1 if sort_order == "desc" else 1
    docs = await database.get_documents(
        database.ORDERS,
        filter_dict,
        limit=limit,
        skip=skip_for(page, limit),
        sort=[(sort_by, direction)],
    )
    total = await database.count_documents(database.ORDERS, filter_dict)
    return [Order.model_validate(d) for d in docs], total


async def restock(order: Order) -> None:
    for item in order.items:
        try:
            product = await product_service.get_product(item.product)
        except NotFoundError:
            logger.warning("Product {} from order {} no longer exists", item.product, order.order_number)
            continue
        if product.stock.track_inventory:
            product.update_stock(item.quantity, "increase")
        product.sold_count = max(0, product.sold_count - item.quantity)
        await product_service.save_product(product)


async def cancel_order(order: Order, reason: str, requested_by: Optional[str]) -> Order:
    order.cancel(reason, requested_by)
    saved = await save_order(order)
    await restock(saved)
    logger.info("Order {} cancelled: {}", saved.order_number, reason)
    return saved


async def get_statistics(customer_id: Optional[str] = None) -> dict[str, Any]:
    db = await database.get_db()
    match = {"customer": customer_id} if customer_id else {}
    pipeline = [
        {"$match": match},
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "revenue": {"$sum": "$total"}}},
    ]
    rows = await db[database.ORDERS].aggregate(pipeline).to_list(length=None)
    by_status = {row["_id"]: row["count"] for row in rows}
    total_orders = sum(by_status.values())
    total_revenue = round(sum(row["revenue"] for row in rows), 2)
    return {
        "total_orders": total_orders,
        "total_revenue": total_revenue,
        "average_order_value": round(total_revenue / total_orders, 2) if total_orders else 0,
        "pending_orders": by_status.get("pending", 0),
        "confirmed_orders": by_status.get("confirmed", 0),
        "delivered_orders": by_status.get("delivered", 0),
        "cancelled_orders": by_status.get("cancelled", 0),
        "by_status": by_status,
    }


async def sales_breakdown(now: Optional[datetime] = None) -> dict[str, list[dict[str, Any]]]:
    """Revenue and order counts per day (7), week (4) and month (12)."""
    now = now or database.utcnow()
    today = datetime(now.year, now.month, now.day)
    since = datetime(today.year - 1, today.month, 1)
    docs = await database.get_documents(
        database.ORDERS,
        {"created_at": {"$gte": since}, "status": {"$nin": NON_REVENUE_STATUSES}},
        limit=0,
        projection={"total": 1, "created_at": 1},
    )

    daily = OrderedDict()
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        daily[day.date()] = {"date": day.date().isoformat(), "orders": 0, "revenue": 0.0}

    weekly = []
    for offset in range(3, -1, -1):
        start = today - timedelta(days=7 * offset + 6)
        weekly.append({"week_start": start.date().isoformat(), "start": start, "orders": 0, "revenue": 0.0})

    monthly = OrderedDict()
    year, month = today.year, today.month
    for _ in range(12):
        monthly[(year, month)] = {"month": f"{year}-{month:02d}", "orders": 0, "revenue": 0.0}
        year, month = (year, month - 1) if month > 1 else (year - 1, 12)

    for doc in docs:
        created, total = doc["created_at"], doc.get("total", 0)
        buckets = [daily.get(created.date()), monthly.get((created.year, created.month))]
        for week in weekly:
            if week["start"] <= created < week["start"] + timedelta(days=7):
                buckets.append(week)
        for bucket in buckets:
            if bucket is not None:
                bucket["orders"] += 1
                bucket["revenue"] = round(bucket["revenue"] + total, 2)

    for week in weekly:
        del week["start"]
    return {
        "daily": list(daily.values()),
        "weekly": weekly,
        "monthly": list(reversed(monthly.values())),
    }


async def cancel_stale_orders(ttl_hours: int) -> int:
    """Cancel unpaid pending orders older than ttl_hours, restocking their items."""
    cutoff = database.utcnow() - timedelta(hours=ttl_hours)
    docs = await database.get_documents(
        database.ORDERS,
        {"status": "pending", "payment.status": "pending", "created_at": {"$lt": cutoff}},
        limit=0,
    )
    for doc in docs:
        await cancel_order(Order.model_validate(doc), "Payment not received", None)
    return len(docs)
