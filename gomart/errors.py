"""Domain errors raised by the crud / cart layers.

They subclass ValueError so callers that only care about "the request broke a
business rule" can keep catching ValueError. Routers map ``code`` to an HTTP
status and put ``to_detail()`` in the response body.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, status


class GoMartError(ValueError):
    code = "invalid_request"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.context = context
        super().__init__(message or self.code)

    def to_detail(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self), **self.context}


class ValidationFailed(GoMartError):
    code = "invalid_request"

    def __init__(self, code: str, message: str | None = None, **context: Any) -> None:
        self.code = code
        super().__init__(message, **context)


class NotFound(GoMartError):
    code = "not_found"

    def __init__(self, code: str, message: str | None = None, **context: Any) -> None:
        self.code = code
        super().__init__(message, **context)


class Conflict(GoMartError):
    code = "conflict"

    def __init__(self, code: str, message: str | None = None, **context: Any) -> None:
        self.code = code
        super().__init__(message, **context)


class Forbidden(GoMartError):
    code = "forbidden"

    def __init__(self, code: str, message: str | None = None, **context: Any) -> None:
        self.code = code
        super().__init__(message, **context)


class InsufficientStock(GoMartError):
    code = "insufficient_stock"

    def __init__(self, product_id: int, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock. Only {available} items available.",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ProductNotFound(NotFound):
    def __init__(self, product_id: int) -> None:
        super().__init__("product_not_found", "Product not found", product_id=product_id)
        self.product_id = product_id


class CartNotFound(NotFound):
    def __init__(self, cart_id: str) -> None:
        super().__init__("cart_not_found", "Cart not found", cart_id=cart_id)


class CartNotActive(Conflict):
    def __init__(self, cart_id: str, status: str) -> None:
        super().__init__(
            "cart_not_active",
            f"Cart is {status} and can no longer be changed",
            cart_id=cart_id,
            status=status,
        )
        self.status = status


def to_http_exception(exc: GoMartError):
    if isinstance(exc, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, Conflict):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, Forbidden):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=exc.to_detail())
