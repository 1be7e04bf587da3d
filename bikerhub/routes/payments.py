from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from bikerhub import database
from bikerhub.auth import get_current_user
from bikerhub.config import settings
from bikerhub.errors import AppError, ForbiddenError, NotFoundError, OrderStateError
from bikerhub.responses import envelope
from bikerhub.schemas import TERMINAL_STATUSES, PaymentRecord, User
from bikerhub.services import orders as order_service

router = APIRouter(prefix="/api/payments", tags=["payments"])


class PaymentIn(BaseModel):
    amount: float = Field(ge=0)
    currency: str
    payment_method: str = Field(min_length=1)
    order_id: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def supported_currency(cls, v: str) -> str:
        if v.upper() not in settings.supported_currencies:
            raise ValueError(f"Currency must be one of {', '.join(settings.supported_currencies)}")
        return v.upper()


@router.post("/process")
async def process_payment(payload: PaymentIn, user: User = Depends(get_current_user)):
    order = None
    if payload.order_id:
        order = await order_service.get_order(payload.order_id)
        if user.role != "admin" and order.customer != user.id:
            raise ForbiddenError("Access denied. You can only access your own resources.")
        if order.status in TERMINAL_STATUSES:
            raise OrderStateError("Order cannot be paid in its current status")
        if order.payment.status == "completed":
            raise AppError("Order is already paid", 400)
        if payload.amount < order.total:
            raise AppError("Payment amount does not cover the order total", 400)

    record = PaymentRecord(
        transaction_id=f"txn_{uuid.uuid4().hex}",
        amount=payload.amount,
        currency=payload.currency,
        payment_method=payload.payment_method,
        order_id=payload.order_id,
        user=user.id,
    )
    saved = PaymentRecord.model_validate(await database.create_document(database.PAYMENTS, record.to_mongo()))

    if order is not None:
        order.payment.status = "completed"
        order.payment.transaction_id = saved.transaction_id
        order.payment.gateway = payload.payment_method
        order.payment.paid_at = database.utcnow()
        if order.status == "pending":
            order.update_status("confirmed", "Payment received", user.id)
        await order_service.save_order(order)

    logger.info("Payment {} of {:.2f} {} processed", saved.transaction_id, saved.amount, saved.currency)
    return envelope(
        "Payment processed successfully",
        {
            "transaction_id": saved.transaction_id,
            "status": saved.status,
            "amount": saved.amount,
            "currency": saved.currency,
            "order_id": saved.order_id,
        },
    )


@router.get("/status/{transaction_id}")
async def payment_status(transaction_id: str, user: User = Depends(get_current_user)):
    docs = await database.get_documents(database.PAYMENTS, {"transaction_id": transaction_id}, limit=1)
    if not docs:
        raise NotFoundError("Payment not found")
    record = PaymentRecord.model_validate(docs[0])
    if user.role != "admin" and record.user != user.id:
        raise ForbiddenError("Access denied. You can only access your own resources.")
    return envelope("Payment status", {"id": record.transaction_id, "status": record.status, "amount": record.amount})
