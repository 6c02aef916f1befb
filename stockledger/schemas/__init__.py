# Pydantic Schemas Package
from .stock import (
    StockUpsert, StockAdjust, StockReserve, StockRelease, StockTransfer,
    StockRecordResponse, StockMovementResponse, MovementStat,
)

__all__ = [
    "StockUpsert", "StockAdjust", "StockReserve", "StockRelease", "StockTransfer",
    "StockRecordResponse", "StockMovementResponse", "MovementStat",
]
