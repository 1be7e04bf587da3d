from tests.conftest import BIKE, auth_headers, register


def create(client, headers, **overrides):
    resp = client.post("/api/products", json={**BIKE, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_create_product(client, user, product):
    assert product["seller"] == user["user"]["id"]
    assert product["seo"]["slug"] == "trail-blazer-29"
    assert product["current_price"] == 1000.0
    assert product["availability"] == "in-stock"


def test_create_product_requires_auth(client):
    assert client.post("/api/products", json=BIKE).status_code == 401


def test_create_product_validation(client, user):
    resp = client.post(
        "/api/products", json={**BIKE, "description": "short", "category": "unicycle"}, headers=user["headers"]
    )
    assert resp.status_code == 400
    fields = {e["field"] for e in resp.json()["errors"]}
    assert {"description", "category"} <= fields


def test_get_product_counts_views(client, product):
    first = client.get(f"/api/products/{product['id']}").json()["data"]
    second = client.get(f"/api/products/{product['id']}").json()["data"]
    assert first["view_count"] == 1
    assert second["view_count"] == 2


def test_get_product_bad_id(client):
    resp = client.get("/api/products/not-an-object-id")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Resource not found"


def test_list_products_filters(client, user):
    create(client, user["headers"])
    create(client, user["headers"], name="City Glide", category="hybrid", brand="Giant", price=500.0, sale_price=400.0)
    create(client, user["headers"], name="Hidden Draft", status="draft")

    resp = client.get("/api/products")
    body = resp.json()
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "pages": 1}

    def names(resp):
        return {p["name"] for p in resp.json()["data"]}

    assert names(client.get("/api/products", params={"category": "hybrid"})) == {"City Glide"}
    assert names(client.get("/api/products", params={"brand": "trek"})) == {"Trail Blazer 29"}
    assert names(client.get("/api/products", params={"q": "glide"})) == {"City Glide"}
    assert names(client.get("/api/products", params={"max_price": 450})) == {"City Glide"}
    assert names(client.get("/api/products", params={"min_price": 450})) == {"Trail Blazer 29"}


def test_list_products_sort_and_paginate(client, user):
    create(client, user["headers"], name="Cheap Ride", price=100.0)
    create(client, user["headers"], name="Mid Ride", price=500.0)
    create(client, user["headers"], name="Top Ride", price=900.0)

    resp = client.get("/api/products", params={"sort_by": "price", "sort_order": "asc", "limit": 2, "page": 2})
    body = resp.json()
    assert [p["name"] for p in body["data"]] == ["Top Ride"]
    assert body["pagination"]["pages"] == 2


def test_featured(client, user):
    create(client, user["headers"], is_featured=True)
    create(client, user["headers"], name="Plain Ride")
    data = client.get("/api/products/featured").json()["data"]
    assert [p["name"] for p in data] == ["Trail Blazer 29"]


def test_update_product_owner_only(client, user, product):
    other = register(client, username="other", email="other@bikerhub.com")
    url = f"/api/products/{product['id']}"

    assert client.put(url, json={"price": 1.0}, headers=auth_headers(other["token"])).status_code == 403

    resp = client.put(url, json={"name": "Trail Blazer 29 Pro", "sale_price": 900.0}, headers=user["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["seo"]["slug"] == "trail-blazer-29-pro"
    assert data["current_price"] == 900.0
    assert data["is_on_sale"] is True


def test_admin_can_delete_any_product(client, product, admin):
    url = f"/api/products/{product['id']}"
    assert client.delete(url, headers=admin["headers"]).status_code == 200
    assert client.get(url).status_code == 404


def test_stock_update(client, user, product):
    url = f"/api/products/{product['id']}/stock"
    resp = client.patch(url, json={"quantity": 10, "operation": "decrease"}, headers=user["headers"])
    data = resp.json()["data"]
    assert data["stock"]["quantity"] == 0
    assert data["availability"] == "out-of-stock"

    resp = client.patch(url, json={"quantity": 5, "operation": "increase"}, headers=user["headers"])
    data = resp.json()["data"]
    assert data["stock"]["quantity"] == 5
    assert data["availability"] == "in-stock"


def test_favorite_count_never_negative(client, user, product):
    url = f"/api/products/{product['id']}/favorite"
    assert client.post(url, headers=user["headers"]).json()["data"]["favorite_count"] == 1
    assert client.delete(url, headers=user["headers"]).json()["data"]["favorite_count"] == 0
    assert client.delete(url, headers=user["headers"]).json()["data"]["favorite_count"] == 0


def test_seed_products(client, user, admin):
    assert client.post("/api/products/seed", headers=user["headers"]).status_code == 403

    resp = client.post("/api/products/seed", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["data"] == {"inserted": 6}
    assert client.post("/api/products/seed", headers=admin["headers"]).json()["data"] == {"inserted": 0}
    assert client.get("/api/products").json()["pagination"]["total"] == 6
