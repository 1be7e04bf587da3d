from __future__ import annotations

import math
from typing import Any


def envelope(message: str, data: Any = None, **extra: Any) -> dict[str, Any]:
    """The {success, message, data} wrapper every route returns."""
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return body


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def skip_for(page: int, limit: int) -> int:
    return (page - 1) * limit
