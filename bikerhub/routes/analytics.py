from __future__ import annotations

from fastapi import APIRouter, Depends

from bikerhub import database
from bikerhub.auth import require_admin
from bikerhub.responses import envelope
from bikerhub.schemas import Product, User
from bikerhub.services import orders as order_service

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("")
async def overview(_: User = Depends(require_admin)):
    stats = await order_service.get_statistics()
    top = await database.get_documents(database.PRODUCTS, {"sold_count": {"$gt": 0}}, limit=5, sort=[("sold_count", -1)])
    top_products = [
        {"id": p.id, "name": p.name, "sold_count": p.sold_count, "current_price": p.current_price}
        for p in (Product.model_validate(d) for d in top)
    ]
    return envelope(
        "Analytics overview",
        {
            "total_users": await database.count_documents(database.USERS),
            "total_products": await database.count_documents(database.PRODUCTS),
            "total_orders": stats["total_orders"],
            "total_revenue": stats["total_revenue"],
            "average_order_value": stats["average_order_value"],
            "orders_by_status": stats["by_status"],
            "top_products": top_products,
        },
    )


@router.get("/sales")
async def sales(_: User = Depends(require_admin)):
    return envelope("Sales analytics", await order_service.sales_breakdown())
