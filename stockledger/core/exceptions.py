"""
Ledger Exceptions

Every error raised by the stock engine derives from StockLedgerError and
carries a stable ``code`` plus the HTTP status the API layer should use.
"""
from typing import Any, Dict, Optional


class StockLedgerError(Exception):
    """Base class for all stock engine errors"""
    code = "stock_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["errors"] = self.details
        return payload


class NotFound(StockLedgerError):
    """Stock record, product, variant or warehouse does not exist"""
    code = "not_found"
    status_code = 404


class InsufficientStock(StockLedgerError):
    """Operation would drive quantity_on_hand negative"""
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str = "Insufficient stock available", available: Optional[int] = None, requested: Optional[int] = None):
        details = {}
        if available is not None:
            details["available"] = available
        if requested is not None:
            details["requested"] = requested
        super().__init__(message, details)
        self.available = available
        self.requested = requested


class ValidationError(StockLedgerError):
    """Malformed operation arguments (non-positive quantity, same-warehouse transfer, ...)"""
    code = "validation_error"
    status_code = 400


class StorageFailure(StockLedgerError):
    """Underlying store unreachable or constraint violated"""
    code = "storage_failure"
    status_code = 500


class ConcurrencyConflict(StockLedgerError):
    """Optimistic write lost a race against another writer"""
    code = "concurrency_conflict"
    status_code = 409
