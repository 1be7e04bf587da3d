from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bikerhub.auth import get_current_user, require_admin, require_moderator
from bikerhub.errors import ForbiddenError
from bikerhub.responses import envelope, pagination
from bikerhub.schemas import ContactAddress, Order, OrderStatus, PaymentMethod, ShippingMethod, User
from bikerhub.services import orders as order_service

router = APIRouter(prefix="/api/orders", tags=["orders"])

STAFF_ROLES = ("admin", "moderator")


class CartItem(BaseModel):
    product: str
    quantity: int = Field(ge=1, default=1)


class OrderIn(BaseModel):
    items: list[CartItem] = Field(min_length=1)
    payment_method: PaymentMethod
    billing_address: ContactAddress
    shipping_address: Optional[ContactAddress] = None
    shipping_method: ShippingMethod = "standard"
    discount_code: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    is_gift: bool = False
    gift_message: Optional[str] = Field(default=None, max_length=300)


class StatusUpdate(BaseModel):
    status: OrderStatus
    note: str = ""
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


class CancelIn(BaseModel):
    reason: str = Field(min_length=3, max_length=500)


class RefundIn(BaseModel):
    amount: float = Field(gt=0)
    reason: str = Field(min_length=3, max_length=500)


class DiscountCheck(BaseModel):
    code: str
    subtotal: float = Field(default=0, ge=0)


def _can_view(order: Order, user: User) -> bool:
    if user.role in STAFF_ROLES or order.customer == user.id:
        return True
    return any(item.seller == user.id for item in order.items)


@router.get("")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    user: User = Depends(get_current_user),
):
    filter_dict = {} if user.role in STAFF_ROLES else {"customer": user.id}
    if status:
        filter_dict["status"] = status
    orders, total = await order_service.list_orders(filter_dict, page, limit, sort_order=sort_order)
    return envelope(
        "Orders retrieved",
        [o.model_dump() for o in orders],
        pagination=pagination(page, limit, total),
    )


@router.get("/stats")
async def order_stats(user: User = Depends(get_current_user)):
    customer_id = None if user.role in STAFF_ROLES else user.id
    return envelope("Order statistics", await order_service.get_statistics(customer_id))


@router.get("/seller")
async def seller_orders(
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
):
    filter_dict = {"items.seller": user.id}
    if status:
        filter_dict["status"] = status
    orders, total = await order_service.list_orders(filter_dict, page, limit)
    return envelope(
        "Seller orders retrieved",
        [o.model_dump() for o in orders],
        pagination=pagination(page, limit, total),
    )


@router.post("/discount")
async def check_discount(payload: DiscountCheck):
    code = payload.code.strip().upper()
    if code not in order_service.DISCOUNT_CODES:
        return envelope("Invalid discount code", {"valid": False, "code": code})
    discount = order_service.resolve_discount(code, payload.subtotal)
    kind, value = order_service.DISCOUNT_CODES[code]
    return envelope(
        "Discount code is valid",
        {"valid": True, "code": code, "type": kind, "value": value, "amount": discount.amount},
    )


@router.get("/{order_id}")
async def get_order(order_id: str, user: User = Depends(get_current_user)):
    order = await order_service.get_order(order_id)
    if not _can_view(order, user):
        raise ForbiddenError("Access denied. You can only access your own resources.")
    return envelope("Order retrieved", order.model_dump())


@router.post("", status_code=201)
async def create_order(payload: OrderIn, user: User = Depends(get_current_user)):
    order = await order_service.place_order(
        customer_id=user.id,
        lines=[(item.product, item.quantity) for item in payload.items],
        payment_method=payload.payment_method,
        billing_address=payload.billing_address,
        shipping_address=payload.shipping_address or payload.billing_address,
        shipping_method=payload.shipping_method,
        discount_code=payload.discount_code,
        customer_note=payload.notes,
        is_gift=payload.is_gift,
        gift_message=payload.gift_message,
    )
    return envelope("Order created successfully", order.model_dump())


@router.patch("/{order_id}/status")
async def update_status(order_id: str, payload: StatusUpdate, user: User = Depends(require_moderator)):
    order = await order_service.get_order(order_id)
    if payload.status == "cancelled":
        order = await order_service.cancel_order(order, payload.note or "Cancelled by staff", user.id)
        return envelope("Order status updated", order.model_dump())

    if payload.tracking_number:
        order.shipping.tracking_number = payload.tracking_number
    if payload.carrier:
        order.shipping.carrier = payload.carrier
    order.update_status(payload.status, payload.note, user.id)
    order = await order_service.save_order(order)
    return envelope("Order status updated", order.model_dump())


@router.post("/{order_id}/cancel")
async def cancel_order(order_id: str, payload: CancelIn, user: User = Depends(get_current_user)):
    order = await order_service.get_order(order_id)
    if user.role != "admin" and order.customer != user.id:
        raise ForbiddenError("Access denied. You can only access your own resources.")
    order = await order_service.cancel_order(order, payload.reason, user.id)
    return envelope("Order cancelled successfully", order.model_dump())


@router.post("/{order_id}/refund")
async def refund_order(order_id: str, payload: RefundIn, admin: User = Depends(require_admin)):
    order = await order_service.get_order(order_id)
    order.process_refund(payload.amount, payload.reason, admin.id)
    order = await order_service.save_order(order)
    return envelope("Refund processed successfully", order.model_dump())
