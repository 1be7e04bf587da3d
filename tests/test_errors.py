import jwt
import pytest
from bson.errors import InvalidId
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from bikerhub.errors import (
    AppError,
    ForbiddenError,
    NotFoundError,
    UploadLimitError,
    duplicate_field,
    resolve_error,
)
from bikerhub.schemas import Product


def test_app_error_status():
    assert AppError("boom").status_code == 500
    assert AppError("boom").status == "error"
    assert NotFoundError("missing").status == "fail"
    assert ForbiddenError("no").status_code == 403
    assert AppError("bad", 422).status_code == 422


def test_resolve_invalid_id():
    assert resolve_error(InvalidId("x")) == (404, "Resource not found")


def test_resolve_duplicate_key():
    exc = DuplicateKeyError("E11000 duplicate key error", 11000, {"keyValue": {"email": "a@bikerhub.com"}})
    assert resolve_error(exc) == (400, "Duplicate field value: email. Please use another value.")


def test_duplicate_field_from_message():
    exc = DuplicateKeyError(
        'E11000 duplicate key error collection: bikerhub.user index: username_1 dup key: { username: "x" }', 11000
    )
    assert duplicate_field(exc) == "username"


def test_resolve_validation_error():
    with pytest.raises(ValidationError) as info:
        Product.model_validate({"name": "x"})
    status, message = resolve_error(info.value)
    assert status == 400
    assert "Field required" in message


def test_resolve_jwt_errors():
    assert resolve_error(jwt.ExpiredSignatureError()) == (401, "Token expired. Please log in again.")
    assert resolve_error(jwt.DecodeError()) == (401, "Invalid token. Please log in again.")


def test_resolve_upload_limits():
    assert resolve_error(UploadLimitError("LIMIT_FILE_COUNT")) == (400, "Too many files. Maximum is 5 files.")
    assert resolve_error(UploadLimitError("LIMIT_UNEXPECTED_FILE")) == (400, "Unexpected file field.")


def test_resolve_unknown_error():
    assert resolve_error(RuntimeError("kaboom")) == (500, "kaboom")


def test_unknown_route(client):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Route /api/does-not-exist not found"
    assert body["status_code"] == 404
    assert "timestamp" in body


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "success"
    assert body["data"]["environment"] == "test"
    assert "database" in body["data"]
