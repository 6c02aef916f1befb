# Services Package
from .catalog_service import CatalogService
from .movement_service import MovementService
from .stock_service import StockService
from .reservation_service import ReservationService
from .transfer_service import TransferService
from .report_service import ReportService

__all__ = [
    "CatalogService",
    "MovementService",
    "StockService",
    "ReservationService",
    "TransferService",
    "ReportService",
]
