"""
Movement Service - append-only stock movement ledger
"""
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Optional, Union
import logging

from stockledger.core import settings
from stockledger.core.exceptions import NotFound, ValidationError
from stockledger.models import StockMovement, StockRecord, MovementType

logger = logging.getLogger(__name__)

class MovementService:
    """Ledger appends, history queries and replay checks"""

    @staticmethod
    def _with_stock(query):
        return query.options(
            joinedload(StockMovement.stock).joinedload(StockRecord.product),
            joinedload(StockMovement.stock).joinedload(StockRecord.warehouse),
        )

    @staticmethod
    def _parse_type(movement_type: Union[str, MovementType]) -> MovementType:
        try:
            return MovementType(movement_type)
        except ValueError:
            allowed = ", ".join(t.value for t in MovementType)
            raise ValidationError(f"Unknown movement type '{movement_type}'. Expected one of: {allowed}") from None

    @staticmethod
    def append(
        db: Session,
        stock_id: int,
        change_qty: int,
        movement_type: Union[str, MovementType],
        reference: Optional[str] = None,
        created_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> int:
        """Insert one ledger entry in the caller's transaction and return its id"""
        movement = StockMovement(
            stock_id=stock_id,
            change_qty=change_qty,
            movement_type=MovementService._parse_type(movement_type),
            reference=reference,
            created_by=created_by,
            note=note,
        )
        db.add(movement)
        db.flush()
        logger.info(f"Movement {movement.id}: stock={stock_id} {movement.movement_type.value} {change_qty:+d} ref={reference}")
        return movement.id

    @staticmethod
    def get_by_stock_id(db: Session, stock_id: int) -> List[StockMovement]:
        """All movements of one stock record, newest first"""
        return MovementService._with_stock(db.query(StockMovement)).filter(
            StockMovement.stock_id == stock_id
        ).order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()

    @staticmethod
    def get_by_movement_type(
        db: Session,
        movement_type: Union[str, MovementType],
        limit: Optional[int] = None
    ) -> List[StockMovement]:
        """Movements of one type, newest first"""
        movement_type = MovementService._parse_type(movement_type)
        limit = limit or settings.DEFAULT_MOVEMENT_TYPE_LIMIT

        return MovementService._with_stock(db.query(StockMovement)).filter(
            StockMovement.movement_type == movement_type
        ).order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()

    @staticmethod
    def get_recent(db: Session, limit: Optional[int] = None) -> List[StockMovement]:
        """Latest movements across all stock"""
        limit = limit or settings.DEFAULT_MOVEMENT_LIMIT
        return MovementService._with_stock(db.query(StockMovement)).order_by(
            StockMovement.created_at.desc(), StockMovement.id.desc()
        ).limit(limit).all()

    @staticmethod
    def get_movement_stats(db: Session, warehouse_id: Optional[int] = None, days: Optional[int] = None) -> List[Dict]:
        """Count / sum / average of change_qty per movement type over the trailing window"""
        days = settings.MOVEMENT_STATS_DAYS if days is None else days
        if days < 0:
            raise ValidationError("days must not be negative")
        since = datetime.now(timezone.utc) - timedelta(days=days)

        movement_count = func.count(StockMovement.id).label("movement_count")
        query = db.query(
            StockMovement.movement_type,
            movement_count,
            func.sum(StockMovement.change_qty).label("total_qty_change"),
            func.avg(StockMovement.change_qty).label("avg_qty_change"),
        ).join(
            StockRecord, StockMovement.stock_id == StockRecord.id
        ).filter(
            StockMovement.created_at >= since
        )

        if warehouse_id is not None:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)

        rows = query.group_by(StockMovement.movement_type).order_by(
            movement_count.desc(), StockMovement.movement_type
        ).all()

        return [
            {
                "movement_type": r.movement_type,
                "movement_count": int(r.movement_count),
                "total_qty_change": int(r.total_qty_change or 0),
                "avg_qty_change": float(r.avg_qty_change or 0),
            }
            for r in rows
        ]

    # ===================== RECONCILIATION =====================

    @staticmethod
    def _reconcile_row(stock: StockRecord, ledger_total: int) -> Dict:
        expected = stock.initial_quantity + ledger_total
        return {
            "stock_id": stock.id,
            "product_id": stock.product_id,
            "variant_id": stock.variant_id,
            "warehouse_id": stock.warehouse_id,
            "initial_quantity": stock.initial_quantity,
            "ledger_total": ledger_total,
            "expected_on_hand": expected,
            "quantity_on_hand": stock.quantity_on_hand,
            "consistent": expected == stock.quantity_on_hand,
        }

    @staticmethod
    def reconcile(db: Session, stock_id: int) -> Dict:
        """Replay the ledger of one record and compare with its on-hand quantity"""
        stock = db.get(StockRecord, stock_id)
        if stock is None:
            raise NotFound(f"Stock record {stock_id} not found")

        ledger_total = db.query(
            func.coalesce(func.sum(StockMovement.change_qty), 0)
        ).filter(StockMovement.stock_id == stock_id).scalar()

        return MovementService._reconcile_row(stock, int(ledger_total or 0))

    @staticmethod
    def reconcile_all(db: Session, warehouse_id: Optional[int] = None) -> List[Dict]:
        """Records whose ledger does not replay to their on-hand quantity"""
        ledger_total = func.coalesce(func.sum(StockMovement.change_qty), 0).label("ledger_total")
        query = db.query(StockRecord, ledger_total).outerjoin(
            StockMovement, StockMovement.stock_id == StockRecord.id
        )

        if warehouse_id is not None:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)

        mismatches = []
        for stock, total in query.group_by(StockRecord.id).order_by(StockRecord.id).all():
            row = MovementService._reconcile_row(stock, int(total or 0))
            if not row["consistent"]:
                logger.warning(
                    f"Ledger mismatch on stock {stock.id}: expected {row['expected_on_hand']}, on hand {stock.quantity_on_hand}"
                )
                mismatches.append(row)
        return mismatches
