"""
Typed exception hierarchy for order and transfer operations.

Every error carries a machine-readable ``code`` and, where several problems
were collected before failing, the full ``errors`` list. The API layer maps
each family to an HTTP status (see app.main).

    DomainError
    |
    +-- ValidationError
    |   +-- OrderValidationError
    |   +-- TransferValidationError
    |   +-- PriceMismatchError
    |   +-- NoPricingFoundError
    |   +-- ProductInactiveError
    |   +-- InsufficientStockError
    |   +-- MinimumOrderAmountError
    |   +-- AccountOnHoldError
    |   +-- AccountClosedError
    |
    +-- StateError
    |   +-- InvalidTransitionError
    |   +-- OrderNotEditableError
    |
    +-- ConflictError
    |   +-- ConcurrentDuplicateError
    |   +-- ConcurrentModificationError
    |
    +-- NotFoundError
    |
    +-- StockOperationFailed
"""
from typing import Any, List, Optional


class DomainError(Exception):
    """Base class for all business errors raised by the services."""

    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors) if errors else [message]

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "errors": self.errors}


# ==================== VALIDATION ====================

class ValidationError(DomainError):
    """Malformed or incomplete input."""
    code = "VALIDATION_ERROR"


class OrderValidationError(ValidationError):
    code = "ORDER_VALIDATION_FAILED"


class TransferValidationError(ValidationError):
    """Transfer rejected before any stock mutation."""
    code = "TRANSFER_VALIDATION_FAILED"

    def __init__(self, message: str, result: Any = None):
        errors = list(getattr(result, "errors", []) or [])
        super().__init__(message, errors or None)
        self.result = result

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.result is not None:
            payload["warnings"] = list(self.result.warnings)
            payload["blocked_items"] = [str(p) for p in self.result.blocked_items]
        return payload


class PriceMismatchError(ValidationError):
    code = "PRICE_MISMATCH"


class NoPricingFoundError(ValidationError):
    code = "NO_PRICING_FOUND"


class ProductInactiveError(ValidationError):
    code = "PRODUCT_INACTIVE"


class InsufficientStockError(ValidationError):
    code = "INSUFFICIENT_STOCK"


class MinimumOrderAmountError(ValidationError):
    code = "BELOW_MINIMUM_ORDER_AMOUNT"


class AccountOnHoldError(ValidationError):
    code = "ACCOUNT_ON_HOLD"


class AccountClosedError(ValidationError):
    code = "ACCOUNT_CLOSED"


# ==================== STATE ====================

class StateError(DomainError):
    """Operation not allowed in the entity's current status."""
    code = "STATE_ERROR"


class InvalidTransitionError(StateError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, new: str, errors: Optional[List[str]] = None):
        message = f"Cannot transition from {current} to {new}"
        super().__init__(message, errors)
        self.current_status = current
        self.new_status = new


class OrderNotEditableError(StateError):
    code = "ORDER_NOT_EDITABLE"


# ==================== CONFLICT ====================

class ConflictError(DomainError):
    code = "CONFLICT"


class ConcurrentDuplicateError(ConflictError):
    """Same idempotency key is still being processed."""
    code = "CONCURRENT_DUPLICATE"


class ConcurrentModificationError(ConflictError):
    """Row changed between read and conditional write."""
    code = "CONCURRENT_MODIFICATION"


# ==================== NOT FOUND ====================

class NotFoundError(DomainError):
    code = "NOT_FOUND"


# ==================== STOCK ====================

class StockOperationFailed(DomainError):
    """External stock mutation failed; never swallowed."""
    code = "STOCK_OPERATION_FAILED"

    def __init__(self, message: str, failures: Optional[List[dict]] = None):
        errors = [f"{f.get('product_id')}: {f.get('error')}" for f in failures or []]
        super().__init__(message, errors or None)
        self.failures = list(failures or [])
