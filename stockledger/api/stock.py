"""
Stock API - stock levels, ledger operations and movement history
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from stockledger.core import settings
from stockledger.core.database import get_db
from stockledger.core.exceptions import NotFound
from stockledger.models import StockRecord, StockMovement
from stockledger.schemas.stock import (
    StockUpsert, StockAdjust, StockReserve, StockRelease, StockTransfer,
    StockRecordResponse, StockMovementResponse, MovementStat,
)
from stockledger.services import (
    StockService, MovementService, ReservationService, TransferService, ReportService
)

router = APIRouter(prefix="/stock", tags=["Stock"])
logger = logging.getLogger(__name__)


def _envelope(data, **extra):
    payload = {"success": True, "data": data}
    if isinstance(data, list):
        payload["count"] = len(data)
    payload.update(extra)
    return payload

def _stock_rows(records: List[StockRecord]):
    return [StockRecordResponse.model_validate(r).model_dump(mode="json") for r in records]

def _movement_rows(movements: List[StockMovement]):
    return [StockMovementResponse.model_validate(m).model_dump(mode="json") for m in movements]


# ===================== STOCK LEVELS =====================

@router.get("/levels")
def stock_levels(
    warehouse_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    low_stock_only: bool = Query(False),
    db: Session = Depends(get_db)
):
    records = StockService.find_stock(db, warehouse_id, product_id, low_stock_only)
    return _envelope(_stock_rows(records))

@router.get("/levels/warehouse/{warehouse_id}")
def stock_by_warehouse(warehouse_id: int, db: Session = Depends(get_db)):
    return _envelope(_stock_rows(StockService.get_stock_by_warehouse(db, warehouse_id)))

@router.get("/levels/product/{product_id}")
def stock_by_product(
    product_id: int,
    variant_id: Optional[int] = Query(None),
    db: Session = Depends(get_db)
):
    return _envelope(_stock_rows(StockService.get_stock_by_product(db, product_id, variant_id)))

@router.get("/records/{stock_id}")
def stock_record(stock_id: int, db: Session = Depends(get_db)):
    record = StockService.get_stock_by_id(db, stock_id)
    if record is None:
        raise NotFound("Stock record not found")
    return _envelope(StockRecordResponse.model_validate(record).model_dump(mode="json"))

@router.get("/low-stock")
def low_stock(warehouse_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return _envelope(_stock_rows(StockService.get_low_stock(db, warehouse_id)))

@router.get("/low-stock/warehouse/{warehouse_id}")
def low_stock_by_warehouse(warehouse_id: int, db: Session = Depends(get_db)):
    return _envelope(_stock_rows(StockService.get_low_stock(db, warehouse_id)))


# ===================== OPERATIONS =====================

@router.post("/upsert")
def upsert_stock(data: StockUpsert, db: Session = Depends(get_db)):
    record = StockService.upsert_stock(db, data)
    return _envelope(StockRecordResponse.model_validate(record).model_dump(mode="json"), message="Stock saved successfully")

@router.post("/adjust")
def adjust_stock(data: StockAdjust, db: Session = Depends(get_db)):
    result = ReservationService.adjust(
        db, data.product_id, data.variant_id, data.warehouse_id,
        data.new_quantity, data.reason, data.created_by
    )
    return _envelope(result, message="Stock adjusted successfully")

@router.post("/reserve")
def reserve_stock(data: StockReserve, db: Session = Depends(get_db)):
    result = ReservationService.reserve(
        db, data.product_id, data.variant_id, data.warehouse_id,
        data.quantity, data.reference, data.created_by
    )
    return _envelope(result, message="Stock reserved successfully")

@router.post("/release")
def release_stock(data: StockRelease, db: Session = Depends(get_db)):
    result = ReservationService.release(
        db, data.product_id, data.variant_id, data.warehouse_id,
        data.quantity, data.reference, data.created_by
    )
    return _envelope(result, message="Stock released successfully")

@router.post("/transfer")
def transfer_stock(data: StockTransfer, db: Session = Depends(get_db)):
    result = TransferService.transfer(
        db, data.product_id, data.variant_id, data.from_warehouse_id, data.to_warehouse_id,
        data.quantity, data.reference, data.created_by
    )
    return _envelope(result, message="Stock transferred successfully")


# ===================== MOVEMENTS =====================

@router.get("/movements")
def recent_movements(
    limit: int = Query(settings.DEFAULT_MOVEMENT_LIMIT, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    return _envelope(_movement_rows(MovementService.get_recent(db, limit)))

@router.get("/movements/stats")
def movement_stats(
    warehouse_id: Optional[int] = Query(None),
    days: int = Query(settings.MOVEMENT_STATS_DAYS, ge=0),
    db: Session = Depends(get_db)
):
    stats = MovementService.get_movement_stats(db, warehouse_id, days)
    return _envelope([MovementStat(**s).model_dump(mode="json") for s in stats], period_days=days)

@router.get("/movements/stock/{stock_id}")
def movements_by_stock(stock_id: int, db: Session = Depends(get_db)):
    return _envelope(_movement_rows(MovementService.get_by_stock_id(db, stock_id)))

@router.get("/movements/type/{movement_type}")
def movements_by_type(
    movement_type: str,
    limit: int = Query(settings.DEFAULT_MOVEMENT_TYPE_LIMIT, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    return _envelope(_movement_rows(MovementService.get_by_movement_type(db, movement_type, limit)))


# ===================== RECONCILIATION & REPORTS =====================

@router.get("/reconcile")
def reconcile_all(warehouse_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    mismatches = MovementService.reconcile_all(db, warehouse_id)
    if mismatches:
        logger.warning(f"Reconciliation found {len(mismatches)} inconsistent stock records")
    return _envelope(mismatches)

@router.get("/reconcile/{stock_id}")
def reconcile_stock(stock_id: int, db: Session = Depends(get_db)):
    return _envelope(MovementService.reconcile(db, stock_id))

@router.get("/reports/summary")
def stock_summary(warehouse_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    rows = ReportService.get_stock_summary(db, warehouse_id)
    return _envelope([{**r, "stock_value": str(r["stock_value"])} for r in rows])

@router.get("/reports/valuation")
def inventory_valuation(warehouse_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    rows = ReportService.get_inventory_valuation(db, warehouse_id)
    return _envelope([{**r, "total_value": str(r["total_value"])} for r in rows])
