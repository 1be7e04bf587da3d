from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from bikerhub.config import settings

# Each document type => one collection, lowercased name
USERS = "user"
PRODUCTS = "product"
ORDERS = "order"
PAYMENTS = "payment"
UPLOADS = "upload"

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None
_started_at = datetime.now(timezone.utc)


def utcnow() -> datetime:
    # Naive UTC, matching what Mongo hands back.
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(
            settings.DATABASE_URL,
            maxPoolSize=settings.DB_MAX_POOL_SIZE,
            serverSelectionTimeoutMS=settings.DB_SERVER_SELECTION_TIMEOUT_MS,
            socketTimeoutMS=settings.DB_SOCKET_TIMEOUT_MS,
        )
        _db = _client[settings.DATABASE_NAME]
        logger.info("MongoDB client created for database {}", settings.DATABASE_NAME)
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None


def object_id(value: str) -> ObjectId:
    """Parse a path id; bson.errors.InvalidId surfaces as a 404."""
    return ObjectId(value)


def from_mongo(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if doc and "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


async def create_document(collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    now = utcnow()
    data_with_meta = {**data, "created_at": data.get("created_at") or now, "updated_at": now}
    data_with_meta.pop("id", None)
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return from_mongo(inserted) or {}


async def get_document(collection_name: str, doc_id: str) -> Optional[dict[str, Any]]:
    db = await get_db()
    doc = await db[collection_name].find_one({"_id": object_id(doc_id)})
    return from_mongo(doc)


async def get_documents(
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 100,
    skip: int = 0,
    sort: list[tuple[str, int]] | None = None,
    projection: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(from_mongo(d))
    return docs


async def count_documents(collection_name: str, filter_dict: dict[str, Any] | None = None) -> int:
    db = await get_db()
    return await db[collection_name].count_documents(filter_dict or {})


async def update_document(collection_name: str, doc_id: str, data: dict[str, Any]) -> Optional[dict[str, Any]]:
    db = await get_db()
    changes = {k: v for k, v in data.items() if k not in ("id", "_id", "created_at")}
    changes["updated_at"] = utcnow()
    await db[collection_name].update_one({"_id": object_id(doc_id)}, {"$set": changes})
    return await get_document(collection_name, doc_id)


async def delete_document(collection_name: str, doc_id: str) -> bool:
    db = await get_db()
    result = await db[collection_name].delete_one({"_id": object_id(doc_id)})
    return result.deleted_count > 0


async def ensure_indexes() -> None:
    db = await get_db()
    await db[USERS].create_index("email", unique=True)
    await db[USERS].create_index("username", unique=True)

    await db[PRODUCTS].create_index([("category", ASCENDING), ("subcategory", ASCENDING)])
    await db[PRODUCTS].create_index("brand")
    await db[PRODUCTS].create_index("current_price")
    await db[PRODUCTS].create_index("status")
    await db[PRODUCTS].create_index("seller")
    await db[PRODUCTS].create_index([("created_at", DESCENDING)])
    await db[PRODUCTS].create_index("seo.slug")

    await db[ORDERS].create_index("order_number", unique=True)
    await db[ORDERS].create_index("customer")
    await db[ORDERS].create_index("status")
    await db[ORDERS].create_index([("created_at", DESCENDING)])
    await db[ORDERS].create_index("payment.status")
    await db[ORDERS].create_index("items.seller")

    await db[PAYMENTS].create_index("transaction_id", unique=True)
    logger.info("Database indexes ensured")


async def check_database_health() -> dict[str, Any]:
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        db = await get_db()
        await db.command("ping")
        return {"status": "healthy", "state": "connected", "timestamp": timestamp}
    except Exception as e:
        logger.error("Database health check failed: {}", e)
        return {"status": "error", "error": str(e), "timestamp": timestamp}


async def get_database_stats() -> Optional[dict[str, Any]]:
    try:
        db = await get_db()
        stats = await db.command("dbstats")
    except Exception as e:
        logger.error("Failed to get database stats: {}", e)
        return None
    return {
        "collections": stats.get("collections"),
        "data_size": stats.get("dataSize"),
        "storage_size": stats.get("storageSize"),
        "indexes": stats.get("indexes"),
        "index_size": stats.get("indexSize"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def uptime_seconds() -> float:
    return (datetime.now(timezone.utc) - _started_at).total_seconds()
