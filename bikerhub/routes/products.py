from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bikerhub.auth import ensure_owner_or_admin, get_current_user, require_admin
from bikerhub.responses import envelope, pagination
from bikerhub.schemas import (
    Availability,
    Category,
    Condition,
    ProductImage,
    ProductShipping,
    ProductStatus,
    Stock,
    User,
)
from bikerhub.services import products as product_service

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    short_description: Optional[str] = Field(default=None, max_length=200)
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    cost_price: Optional[float] = Field(default=None, ge=0)
    category: Category
    subcategory: Optional[str] = None
    brand: str = Field(min_length=1)
    model: Optional[str] = None
    year: Optional[int] = None
    condition: Condition = "new"
    size: Optional[str] = None
    frame_size: Optional[str] = None
    wheel_size: Optional[str] = None
    color: Optional[str] = None
    colors: list[str] = []
    material: Optional[str] = None
    weight: Optional[float] = Field(default=None, ge=0)
    features: list[str] = []
    specifications: dict[str, str] = {}
    images: list[ProductImage] = []
    stock: Stock = Field(default_factory=Stock)
    availability: Availability = "in-stock"
    shipping: ProductShipping = Field(default_factory=ProductShipping)
    tags: list[str] = []
    status: ProductStatus = "active"
    warranty: Optional[str] = None
    return_policy: Optional[str] = None
    is_featured: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    short_description: Optional[str] = Field(default=None, max_length=200)
    price: Optional[float] = Field(default=None, ge=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    category: Optional[Category] = None
    brand: Optional[str] = None
    condition: Optional[Condition] = None
    features: Optional[list[str]] = None
    specifications: Optional[dict[str, str]] = None
    images: Optional[list[ProductImage]] = None
    stock: Optional[Stock] = None
    availability: Optional[Availability] = None
    shipping: Optional[ProductShipping] = None
    tags: Optional[list[str]] = None
    status: Optional[ProductStatus] = None
    is_featured: Optional[bool] = None


class StockUpdate(BaseModel):
    quantity: int = Field(ge=1)
    operation: Literal["increase", "decrease"] = "decrease"


def _dump(products) -> list[dict[str, Any]]:
    return [p.model_dump() for p in products]


@router.get("")
async def list_products(
    q: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    condition: Optional[Condition] = Query(None),
    availability: Optional[Availability] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort_by: str = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    filter_dict = product_service.build_search_filter(
        q, category, brand, condition, availability, min_price, max_price
    )
    products, total = await product_service.search_products(filter_dict, sort_by, sort_order, page, limit)
    return envelope("Products retrieved", _dump(products), pagination=pagination(page, limit, total))


@router.get("/featured")
async def featured_products(limit: int = Query(10, ge=1, le=50)):
    return envelope("Featured products", _dump(await product_service.find_featured(limit)))


@router.get("/trending")
async def trending_products(limit: int = Query(10, ge=1, le=50)):
    return envelope("Trending products", _dump(await product_service.find_trending(limit)))


@router.get("/best-sellers")
async def best_sellers(limit: int = Query(10, ge=1, le=50)):
    return envelope("Best sellers", _dump(await product_service.find_best_sellers(limit)))


@router.post("/seed")
async def seed_products(admin: User = Depends(require_admin)):
    inserted = await product_service.seed_products(admin.id)
    message = "Products seeded" if inserted else "Products already present, nothing seeded"
    return envelope(message, {"inserted": inserted})


@router.get("/{product_id}")
async def get_product(product_id: str):
    product = await product_service.increment_counter(product_id, "view_count")
    return envelope("Product retrieved", product.model_dump())


@router.post("", status_code=201)
async def create_product(payload: ProductIn, user: User = Depends(get_current_user)):
    product = await product_service.create_product(payload.model_dump(), user.id)
    return envelope("Product created successfully", product.model_dump())


@router.put("/{product_id}")
async def update_product(product_id: str, payload: ProductUpdate, user: User = Depends(get_current_user)):
    product = await product_service.get_product(product_id)
    ensure_owner_or_admin(user, product.seller)
    updated = await product_service.update_product(product, payload.model_dump(exclude_unset=True))
    return envelope("Product updated successfully", updated.model_dump())


@router.delete("/{product_id}")
async def delete_product(product_id: str, user: User = Depends(get_current_user)):
    product = await product_service.get_product(product_id)
    ensure_owner_or_admin(user, product.seller)
    await product_service.delete_product(product_id)
    return envelope("Product deleted successfully", {"id": product_id})


@router.patch("/{product_id}/stock")
async def update_stock(product_id: str, payload: StockUpdate, user: User = Depends(get_current_user)):
    product = await product_service.get_product(product_id)
    ensure_owner_or_admin(user, product.seller)
    updated = await product_service.adjust_stock(product, payload.quantity, payload.operation)
    return envelope("Stock updated", updated.model_dump())


@router.post("/{product_id}/favorite")
async def favorite(product_id: str, _: User = Depends(get_current_user)):
    product = await product_service.increment_counter(product_id, "favorite_count", 1)
    return envelope("Product added to favorites", {"id": product.id, "favorite_count": product.favorite_count})


@router.delete("/{product_id}/favorite")
async def unfavorite(product_id: str, _: User = Depends(get_current_user)):
    product = await product_service.increment_counter(product_id, "favorite_count", -1)
    return envelope("Product removed from favorites", {"id": product.id, "favorite_count": product.favorite_count})
