import os
import time
from datetime import timedelta

from bson import ObjectId

from bikerhub import cron, database
from bikerhub.config import settings
from bikerhub.schemas import ContactAddress
from bikerhub.services import orders as order_service
from bikerhub.services import products as product_service
from tests.conftest import ADDRESS, BIKE, run


def _place_order(quantity=2):
    product = run(product_service.create_product(BIKE, seller_id=None))
    address = ContactAddress.model_validate(ADDRESS)
    order = run(order_service.place_order("c1", [(product.id, quantity)], "cash", address, address))
    return product, order


def test_jobs_are_scheduled():
    scheduler = cron.setup_cron_jobs()
    assert {job.id for job in scheduler.get_jobs()} == {name for name, _, _ in cron.JOBS}


def test_failing_job_is_logged_not_raised():
    async def broken():
        raise RuntimeError("boom")

    assert run(cron._guarded("broken", broken)()) is None


def test_cancel_stale_orders(db):
    product, order = _place_order()
    stale = database.utcnow() - timedelta(hours=settings.PENDING_ORDER_TTL_HOURS + 1)
    run(db[database.ORDERS].update_one({"_id": ObjectId(order.id)}, {"$set": {"created_at": stale}}))
    fresh_product, fresh = _place_order(quantity=1)

    run(cron.order_status_updates())

    assert run(order_service.get_order(order.id)).status == "cancelled"
    assert run(order_service.get_order(fresh.id)).status == "pending"
    assert run(product_service.get_product(product.id)).stock.quantity == 10


def test_paid_orders_are_not_cancelled(db):
    _, order = _place_order()
    stale = database.utcnow() - timedelta(hours=settings.PENDING_ORDER_TTL_HOURS + 1)
    run(
        db[database.ORDERS].update_one(
            {"_id": ObjectId(order.id)}, {"$set": {"created_at": stale, "payment.status": "completed"}}
        )
    )
    assert run(order_service.cancel_stale_orders(settings.PENDING_ORDER_TTL_HOURS)) == 0


def test_cleanup_old_files(db, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    stray = tmp_path / "stray.png"
    kept = tmp_path / "kept.png"
    recent = tmp_path / "recent.png"
    for path in (stray, kept, recent):
        path.write_bytes(b"x")
    old = time.time() - 2 * cron.STRAY_FILE_MAX_AGE_SECONDS
    os.utime(stray, (old, old))
    os.utime(kept, (old, old))
    run(
        database.create_document(
            database.UPLOADS,
            {"filename": "kept.png", "original_name": "kept.png", "url": "/uploads/kept.png", "size": 1,
             "mime_type": "image/png", "owner": "u1"},
        )
    )

    assert run(cron.cleanup_old_files()) == 1
    assert not stray.exists()
    assert kept.exists()
    assert recent.exists()


def test_refresh_product_flags(db):
    product, _ = _place_order()
    idle = run(product_service.create_product({**BIKE, "name": "Idle Ride"}, seller_id=None))

    flags = run(product_service.refresh_product_flags())

    assert flags == {"is_best_seller": 1, "is_trending": 0}
    assert run(product_service.get_product(product.id)).is_best_seller
    assert not run(product_service.get_product(idle.id)).is_best_seller


def test_low_stock_products(db):
    run(product_service.create_product({**BIKE, "stock": {"quantity": 2}}, seller_id=None))
    run(product_service.create_product({**BIKE, "name": "Plenty", "stock": {"quantity": 50}}, seller_id=None))
    assert [p.stock.quantity for p in run(product_service.low_stock_products())] == [2]
    run(cron.inventory_check())
