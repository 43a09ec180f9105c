# Overview: Typed domain errors shared by services and the HTTP error handler.

"""
ERP error taxonomy.

Every service failure is raised as one of these classes. Routes never
translate them by hand; the app-level handler in erp/__init__.py maps
`code` and `http_status` onto the JSON response.

Business conflicts (INSUFFICIENT_STOCK, INVALID_ORDER_STATE,
DUPLICATE_RESOURCE, CONCURRENT_MODIFICATION) are expected outcomes and are
never retried by the services. Callers may retry CONCURRENT_MODIFICATION.
"""

from __future__ import annotations


class ERPError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class ResourceNotFoundError(ERPError):
    code = "RESOURCE_NOT_FOUND"
    http_status = 404

    @classmethod
    def for_entity(cls, entity: str, entity_id) -> "ResourceNotFoundError":
        return cls(
            f"{entity} not found with id: {entity_id}",
            details={"entity": entity, "id": entity_id},
        )


class DuplicateResourceError(ERPError):
    code = "DUPLICATE_RESOURCE"
    http_status = 409


class InsufficientStockError(ERPError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, sku: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for SKU {sku}. Requested: {requested}, Available: {available}",
            details={"sku": sku, "requested": requested, "available": available},
        )
        self.sku = sku
        self.requested = requested
        self.available = available


class InvalidOrderStateError(ERPError):
    code = "INVALID_ORDER_STATE"
    http_status = 400


class BusinessValidationError(ERPError):
    code = "BUSINESS_VALIDATION_ERROR"
    http_status = 400


class ConcurrentModificationError(ERPError):
    code = "CONCURRENT_MODIFICATION"
    http_status = 409

    def __init__(self, message: str = "Record was modified by another transaction. Please retry.",
                 details: dict | None = None):
        super().__init__(message, details)


class ValidationError(ERPError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400
