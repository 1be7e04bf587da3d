"""
Storefront client for the BikerHUB API.
Keeps the cart, wishlist and session in a local JSON file and talks to
the backend over HTTP.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Optional

import httpx
from loguru import logger

DEFAULT_BASE_URL = "http://localhost:5000"

CART_KEY = "bikerhub_cart"
USER_KEY = "bikerhub_user"
TOKEN_KEY = "bikerhub_token"
ORDERS_KEY = "bikerhub_orders"
WISHLIST_KEY = "bikerhub_wishlist"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
MIN_PASSWORD_LENGTH = 6

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


class ClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# --------------- Local persistence ---------------------------------------

class LocalStorage:
    """Key/value store backed by one JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Error reading from local storage {}: {}", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: dict[str, Any]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        except (OSError, TypeError) as e:
            logger.error("Error writing to local storage {}: {}", self.path, e)
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> bool:
        data = self._load()
        data[key] = value
        return self._dump(data)

    def remove(self, key: str) -> bool:
        data = self._load()
        data.pop(key, None)
        return self._dump(data)

    def clear(self) -> bool:
        return self._dump({})


# --------------- Cart ----------------------------------------------------

def _price_of(product: dict[str, Any]) -> float:
    return float(product.get("current_price") or product.get("price") or 0)


def _image_of(product: dict[str, Any]) -> Optional[str]:
    if product.get("primary_image"):
        return product["primary_image"]
    images = product.get("images") or []
    for image in images:
        if image.get("is_primary"):
            return image.get("url")
    return images[0].get("url") if images else None


class Cart:
    def __init__(self, items: Optional[list[dict[str, Any]]] = None):
        self.items: list[dict[str, Any]] = list(items or [])

    def _find(self, product_id: str) -> Optional[dict[str, Any]]:
        return next((item for item in self.items if item["id"] == product_id), None)

    def add(self, product: dict[str, Any], quantity: int = 1) -> dict[str, Any]:
        existing = self._find(product["id"])
        if existing:
            existing["quantity"] += quantity
            return existing
        item = {
            "id": product["id"],
            "name": product.get("name"),
            "price": _price_of(product),
            "image": _image_of(product),
            "quantity": quantity,
        }
        self.items.append(item)
        return item

    def remove(self, product_id: str) -> None:
        self.items = [item for item in self.items if item["id"] != product_id]

    def update_quantity(self, product_id: str, quantity: int) -> None:
        item = self._find(product_id)
        if item is None:
            return
        if quantity <= 0:
            self.remove(product_id)
        else:
            item["quantity"] = quantity

    def total(self) -> float:
        return round(sum(item["price"] * item["quantity"] for item in self.items), 2)

    def item_count(self) -> int:
        return sum(item["quantity"] for item in self.items)

    def clear(self) -> None:
        self.items = []

    def is_empty(self) -> bool:
        return not self.items


# --------------- Catalogue helpers ---------------------------------------

def search_products(products: list[dict[str, Any]], query: str) -> list[dict[str, Any]]:
    term = query.strip().lower()
    if not term:
        return list(products)

    def matches(product: dict[str, Any]) -> bool:
        fields = [product.get(key) or "" for key in ("name", "brand", "category", "description")]
        if any(term in field.lower() for field in fields):
            return True
        return any(term in feature.lower() for feature in product.get("features") or [])

    return [p for p in products if matches(p)]


def filter_products(products: list[dict[str, Any]], category: str = "all") -> list[dict[str, Any]]:
    if category == "all":
        return list(products)
    return [p for p in products if p.get("category") == category]


def _rating_of(product: dict[str, Any]) -> float:
    ratings = product.get("ratings")
    if isinstance(ratings, dict):
        return float(ratings.get("average") or 0)
    return float(product.get("rating") or 0)


SORTERS = {
    "price-low": (lambda p: _price_of(p), False),
    "price-high": (lambda p: _price_of(p), True),
    "rating": (_rating_of, True),
    "newest": (lambda p: p.get("year") or 0, True),
    "name": (lambda p: (p.get("name") or "").lower(), False),
}


def sort_products(products: list[dict[str, Any]], criteria: str) -> list[dict[str, Any]]:
    if criteria not in SORTERS:
        return list(products)
    key, reverse = SORTERS[criteria]
    return sorted(products, key=key, reverse=reverse)


# --------------- Validation / formatting ---------------------------------

def validate_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def validate_password(password: str) -> bool:
    return len(password or "") >= MIN_PASSWORD_LENGTH


def validate_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(re.sub(r"\s", "", phone or "")))


def format_currency(amount: float, currency: str = "USD") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol is None:
        return f"{amount:,.2f} {currency.upper()}"
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


# --------------- API client ----------------------------------------------

class BikerHubClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        storage: Optional[LocalStorage] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.storage = storage or LocalStorage(Path.home() / ".bikerhub" / "storage.json")
        self.http = httpx.Client(base_url=base_url, transport=transport, timeout=timeout)
        self.cart = Cart(self.storage.get(CART_KEY, []))
        self.wishlist: list[str] = list(self.storage.get(WISHLIST_KEY, []))
        self.orders: list[dict[str, Any]] = list(self.storage.get(ORDERS_KEY, []))
        self.user: Optional[dict[str, Any]] = self.storage.get(USER_KEY)
        self.token: Optional[str] = self.storage.get(TOKEN_KEY)
        self.products: list[dict[str, Any]] = []

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "BikerHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("{} {} failed: {}", method, path, e)
            raise ClientError(f"Could not reach the BikerHUB API: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_error:
            raise ClientError(body.get("message") or resp.reason_phrase, resp.status_code)
        return body

    # ---- session

    def _start_session(self, data: dict[str, Any]) -> dict[str, Any]:
        self.token = data["token"]
        self.user = data["user"]
        self.storage.set(TOKEN_KEY, self.token)
        self.storage.set(USER_KEY, self.user)
        return self.user

    def register(self, username: str, email: str, password: str, **fields: Any) -> dict[str, Any]:
        if not validate_email(email):
            raise ClientError("Please enter a valid email address")
        if not validate_password(password):
            raise ClientError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        body = self._request(
            "POST", "/api/auth/register", json={"username": username, "email": email, "password": password, **fields}
        )
        return self._start_session(body["data"])

    def login(self, email: str, password: str) -> dict[str, Any]:
        body = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        user = self._start_session(body["data"])
        logger.info("Logged in as {}", user.get("username"))
        return user

    def logout(self) -> None:
        self.token = None
        self.user = None
        self.storage.remove(TOKEN_KEY)
        self.storage.remove(USER_KEY)

    @property
    def is_logged_in(self) -> bool:
        return bool(self.token and self.user)

    def is_admin(self) -> bool:
        return bool(self.user and self.user.get("role") == "admin")

    # ---- profile

    def _require_login(self) -> None:
        if not self.is_logged_in:
            raise ClientError("Please log in to view your profile")

    def fetch_profile(self) -> dict[str, Any]:
        self._require_login()
        body = self._request("GET", "/api/users/profile")
        self.user = body["data"]
        self.storage.set(USER_KEY, self.user)
        return self.user

    def update_profile(self, **fields: Any) -> dict[str, Any]:
        self._require_login()
        if fields.get("email") is not None and not validate_email(fields["email"]):
            raise ClientError("Please enter a valid email address")
        if fields.get("phone") and not validate_phone(fields["phone"]):
            raise ClientError("Please enter a valid phone number")
        body = self._request("PUT", "/api/users/profile", json=fields)
        self.user = body["data"]
        self.storage.set(USER_KEY, self.user)
        return self.user

    def change_password(self, current_password: str, new_password: str, confirm_password: str) -> None:
        self._require_login()
        if new_password != confirm_password:
            raise ClientError("New passwords do not match")
        if not validate_password(new_password):
            raise ClientError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        self._request(
            "PUT",
            "/api/users/change-password",
            json={
                "current_password": current_password,
                "new_password": new_password,
                "confirm_password": confirm_password,
            },
        )
        logger.info("Password changed for {}", self.user.get("username"))

    def fetch_orders(self) -> list[dict[str, Any]]:
        """Order history of the logged-in user, newest first."""
        self._require_login()
        body = self._request("GET", "/api/orders", params={"limit": 100})
        self.orders = body["data"]
        self.storage.set(ORDERS_KEY, self.orders)
        return self.orders

    def total_spent(self) -> float:
        return round(sum(float(order.get("total") or 0) for order in self.orders), 2)

    # ---- catalogue

    def fetch_products(self, **params: Any) -> list[dict[str, Any]]:
        body = self._request("GET", "/api/products", params={k: v for k, v in params.items() if v is not None})
        self.products = body["data"]
        return self.products

    def _known_product(self, product_id: str) -> Optional[dict[str, Any]]:
        return next((p for p in self.products if p["id"] == product_id), None)

    # ---- cart

    def _save_cart(self) -> None:
        self.storage.set(CART_KEY, self.cart.items)

    def add_to_cart(self, product_id: str, quantity: int = 1) -> bool:
        product = self._known_product(product_id)
        if product is None:
            return False
        self.cart.add(product, quantity)
        self._save_cart()
        return True

    def remove_from_cart(self, product_id: str) -> None:
        self.cart.remove(product_id)
        self._save_cart()

    def update_cart_quantity(self, product_id: str, quantity: int) -> None:
        self.cart.update_quantity(product_id, quantity)
        self._save_cart()

    def clear_cart(self) -> None:
        self.cart.clear()
        self._save_cart()

    # ---- wishlist

    def toggle_wishlist(self, product_id: str) -> bool:
        """Add or remove; returns True when the product is now on the list."""
        if product_id in self.wishlist:
            self.wishlist.remove(product_id)
            added = False
        else:
            self.wishlist.append(product_id)
            added = True
        self.storage.set(WISHLIST_KEY, self.wishlist)
        return added

    # ---- checkout

    def create_order(
        self,
        billing_address: dict[str, Any],
        payment_method: str = "credit_card",
        shipping_address: Optional[dict[str, Any]] = None,
        shipping_method: str = "standard",
        discount_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> dict[str, Any]:
        if self.cart.is_empty():
            raise ClientError("Your cart is empty")
        if not self.is_logged_in:
            raise ClientError("Please log in to place an order")

        payload = {
            "items": [{"product": item["id"], "quantity": item["quantity"]} for item in self.cart.items],
            "payment_method": payment_method,
            "billing_address": billing_address,
            "shipping_address": shipping_address,
            "shipping_method": shipping_method,
            "discount_code": discount_code,
            "notes": notes,
        }
        body = self._request("POST", "/api/orders", json=payload)
        order = body["data"]
        self.orders.append(order)
        self.storage.set(ORDERS_KEY, self.orders)
        self.clear_cart()
        logger.info("Order {} placed", order.get("order_number"))
        return order
