"""
Product catalogue persistence: search, stock adjustments, counters, seeding.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from bson import ObjectId
from loguru import logger

from bikerhub import database
from bikerhub.errors import NotFoundError
from bikerhub.responses import skip_for
from bikerhub.schemas import Product

SORT_FIELDS = {
    "created_at": "created_at",
    "price": "current_price",
    "name": "name",
    "rating": "ratings.average",
    "view_count": "view_count",
    "sold_count": "sold_count",
    "year": "year",
}

# Seed data: the default BikerHUB catalogue
SEED_PRODUCTS: list[dict[str, Any]] = [
    {
        "name": "Mountain Bike Pro X1",
        "brand": "Trek",
        "category": "mountain",
        "price": 1299.99,
        "description": "Professional mountain bike with advanced suspension and premium components. Perfect for off-road adventures and competitive racing.",
        "images": [{"url": "https://images.unsplash.com/photo-1576435728678-68d0fbf94e91?w=500&h=400&fit=crop", "alt": "Mountain Bike Pro X1", "is_primary": True}],
        "stock": {"quantity": 15, "low_stock_threshold": 5},
        "ratings": {"average": 4.8, "count": 127},
        "features": ["Full Suspension", "Hydraulic Disc Brakes", "27.5\" Wheels", "Carbon Frame"],
        "specifications": {"frame": "Carbon Fiber", "weight": "12.5 kg", "gears": "21 Speed", "brakes": "Hydraulic Disc"},
        "year": 2024,
        "color": "Matte Black",
        "size": "Large",
        "tags": ["mountain", "professional", "carbon", "suspension"],
        "is_featured": True,
    },
    {
        "name": "Road Bike Speed Master",
        "brand": "Specialized",
        "category": "road",
        "price": 899.99,
        "description": "Lightweight road bike designed for speed and efficiency. Ideal for road racing and long-distance cycling.",
        "images": [{"url": "https://images.unsplash.com/photo-1532298229144-0ec0c57515c7?w=500&h=400&fit=crop", "alt": "Road Bike Speed Master", "is_primary": True}],
        "stock": {"quantity": 8, "low_stock_threshold": 5},
        "ratings": {"average": 4.6, "count": 89},
        "features": ["Lightweight Frame", "Drop Handlebars", "Thin Tires", "Aero Design"],
        "specifications": {"frame": "Aluminum", "weight": "8.2 kg", "gears": "18 Speed", "brakes": "Rim Brakes"},
        "year": 2024,
        "color": "Racing Red",
        "size": "Medium",
        "tags": ["road", "racing", "lightweight", "aero"],
    },
    {
        "name": "Electric Bike E-Cruiser",
        "brand": "Giant",
        "category": "electric",
        "price": 2499.99,
        "description": "Modern electric bike with powerful motor and long battery life. Perfect for commuting and city riding.",
        "images": [{"url": "https://images.unsplash.com/photo-1558618666-fcd25c85cd64?w=500&h=400&fit=crop", "alt": "Electric Bike E-Cruiser", "is_primary": True}],
        "stock": {"quantity": 12, "low_stock_threshold": 5},
        "ratings": {"average": 4.9, "count": 203},
        "features": ["Electric Motor", "Long Battery Life", "LED Display", "USB Charging"],
        "specifications": {"frame": "Aluminum", "weight": "22.0 kg", "motor": "500W", "battery": "48V 13Ah", "range": "80 km"},
        "year": 2024,
        "tags": ["electric", "commuter", "city"],
        "is_featured": True,
    },
    {
        "name": "BMX Freestyle Pro",
        "brand": "Haro",
        "category": "bmx",
        "price": 449.99,
        "description": "Professional BMX bike built for tricks and stunts. Durable construction for extreme riding.",
        "stock": {"quantity": 25, "low_stock_threshold": 5},
        "tags": ["bmx", "freestyle", "tricks"],
    },
    {
        "name": "Hybrid City Commuter",
        "brand": "Cannondale",
        "category": "hybrid",
        "price": 699.99,
        "description": "Versatile hybrid bike perfect for city commuting and weekend adventures. Comfortable riding position.",
        "stock": {"quantity": 18, "low_stock_threshold": 5},
        "tags": ["hybrid", "commuter", "city"],
    },
    {
        "name": "Kids Balance Bike",
        "brand": "Strider",
        "category": "kids",
        "price": 129.99,
        "description": "Perfect first bike for toddlers. No pedals, no training wheels - just pure balance learning fun.",
        "stock": {"quantity": 30, "low_stock_threshold": 5},
        "tags": ["kids", "balance", "first bike"],
    },
]


async def get_product(product_id: str) -> Product:
    doc = await database.get_document(database.PRODUCTS, product_id)
    if not doc:
        raise NotFoundError("Product not found")
    return Product.model_validate(doc)


async def create_product(data: dict[str, Any], seller_id: Optional[str]) -> Product:
    product = Product.model_validate({**data, "seller": seller_id}).prepare_for_save()
    doc = await database.create_document(database.PRODUCTS, product.to_mongo())
    logger.info("Created product {} ({})", product.name, doc["id"])
    return Product.model_validate(doc)


async def save_product(product: Product) -> Product:
    product.prepare_for_save()
    doc = await database.update_document(database.PRODUCTS, product.id, product.to_mongo())
    return Product.model_validate(doc)


async def update_product(product: Product, changes: dict[str, Any]) -> Product:
    merged = Product.model_validate({**product.model_dump(), **changes})
    if "name" in changes and "seo" not in changes:
        merged.seo.slug = None
    return await save_product(merged)


async def delete_product(product_id: str) -> None:
    if not await database.delete_document(database.PRODUCTS, product_id):
        raise NotFoundError("Product not found")
    logger.info("Deleted product {}", product_id)


def build_search_filter(
    q: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    condition: Optional[str] = None,
    availability: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> dict[str, Any]:
    filter_dict: dict[str, Any] = {"status": "active"}
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        filter_dict["$or"] = [{"name": pattern}, {"description": pattern}, {"brand": pattern}]
    if category and category.lower() != "all":
        filter_dict["category"] = category.lower()
    if brand:
        filter_dict["brand"] = {"$regex": f"^{re.escape(brand)}$", "$options": "i"}
    if condition:
        filter_dict["condition"] = condition
    if availability:
        filter_dict["availability"] = availability
    if min_price is not None or max_price is not None:
        price_range: dict[str, float] = {}
        if min_price is not None:
            price_range["$gte"] = min_price
        if max_price is not None:
            price_range["$lte"] = max_price
        filter_dict["current_price"] = price_range
    return filter_dict


async def search_products(
    filter_dict: dict[str, Any],
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Product], int]:
    sort_field = SORT_FIELDS.get(sort_by, "created_at")
    direction = -1 if sort_order == "desc" else 1
    docs = await database.get_documents(
        database.PRODUCTS,
        filter_dict,
        limit=limit,
        skip=skip_for(page, limit),
        sort=[(sort_field, direction)],
    )
    total = await database.count_documents(database.PRODUCTS, filter_dict)
    return [Product.model_validate(d) for d in docs], total


async def _find_flagged(flag: str, sort_field: str, limit: int) -> list[Product]:
    filter_dict = {flag: True, "status": "active", "stock.quantity": {"$gt": 0}}
    docs = await database.get_documents(database.PRODUCTS, filter_dict, limit=limit, sort=[(sort_field, -1)])
    return [Product.model_validate(d) for d in docs]


async def find_featured(limit: int = 10) -> list[Product]:
    return await _find_flagged("is_featured", "created_at", limit)


async def find_trending(limit: int = 10) -> list[Product]:
    return await _find_flagged("is_trending", "view_count", limit)


async def find_best_sellers(limit: int = 10) -> list[Product]:
    return await _find_flagged("is_best_seller", "sold_count", limit)


async def increment_counter(product_id: str, field: str, amount: int = 1) -> Product:
    product = await get_product(product_id)
    db = await database.get_db()
    if amount < 0:
        # Favorite counts never drop below zero.
        await db[database.PRODUCTS].update_one(
            {"_id": ObjectId(product.id), field: {"$gt": 0}}, {"$inc": {field: amount}}
        )
    else:
        await db[database.PRODUCTS].update_one({"_id": ObjectId(product.id)}, {"$inc": {field: amount}})
    return await get_product(product_id)


async def adjust_stock(product: Product, quantity: int, operation: str) -> Product:
    product.update_stock(quantity, operation)
    saved = await save_product(product)
    logger.info(
        "Stock {} by {} for product {} (now {})", operation + "d", quantity, product.id, saved.stock.quantity
    )
    return saved


async def seed_products(seller_id: Optional[str]) -> int:
    # Insert only if products collection is empty
    if await database.count_documents(database.PRODUCTS) > 0:
        return 0
    for p in SEED_PRODUCTS:
        await create_product(p, seller_id)
    logger.info("Seeded {} products", len(SEED_PRODUCTS))
    return len(SEED_PRODUCTS)


async def refresh_product_flags(top: int = 10) -> dict[str, int]:
    """Recompute best-seller and trending flags from sold/view counts."""
    db = await database.get_db()
    flagged = {}
    for flag, sort_field in (("is_best_seller", "sold_count"), ("is_trending", "view_count")):
        leaders = await database.get_documents(
            database.PRODUCTS,
            {"status": "active", sort_field: {"$gt": 0}},
            limit=top,
            sort=[(sort_field, -1)],
            projection={"_id": 1},
        )
        ids = [ObjectId(d["id"]) for d in leaders]
        await db[database.PRODUCTS].update_many({"_id": {"$nin": ids}}, {"$set": {flag: False}})
        if ids:
            await db[database.PRODUCTS].update_many({"_id": {"$in": ids}}, {"$set": {flag: True}})
        flagged[flag] = len(ids)
    return flagged


async def low_stock_products() -> list[Product]:
    docs = await database.get_documents(
        database.PRODUCTS,
        {"status": "active", "stock.track_inventory": True},
        limit=0,
    )
    return [p for p in (Product.model_validate(d) for d in docs) if p.is_low_stock]
