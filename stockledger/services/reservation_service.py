"""
Reservation Service - adjust / reserve / release against one stock record

Each operation locks the record, computes the new quantities, writes them
and appends exactly one ledger entry, all in one transaction.
"""
from sqlalchemy.orm import Session
from typing import Dict, Optional
import logging

from stockledger.core import atomic, retry_on_conflict
from stockledger.core.exceptions import NotFound, InsufficientStock, ValidationError
from stockledger.models import MovementType, StockRecord
from .catalog_service import CatalogService
from .movement_service import MovementService
from .stock_service import StockService

logger = logging.getLogger(__name__)


def require_positive_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", {"quantity": quantity})


def _load_for_update(db: Session, product_id: int, variant_id: Optional[int], warehouse_id: int) -> StockRecord:
    CatalogService.ensure_item_exists(db, product_id, variant_id)
    CatalogService.ensure_warehouse_exists(db, warehouse_id)

    stock = StockService.lock_stock(db, product_id, variant_id, warehouse_id)
    if stock is None:
        raise NotFound("Stock record not found")
    return stock


class ReservationService:
    """On-hand / reserved bookkeeping for a single stock record"""

    @staticmethod
    @retry_on_conflict
    def adjust(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        warehouse_id: int,
        new_quantity: int,
        reason: str,
        created_by: Optional[str] = None,
    ) -> Dict:
        """Set on-hand to an absolute quantity and book the difference"""
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
            raise ValidationError("new_quantity must be a non-negative integer", {"new_quantity": new_quantity})

        with atomic(db):
            stock = _load_for_update(db, product_id, variant_id, warehouse_id)
            old_quantity = stock.quantity_on_hand
            change_qty = new_quantity - old_quantity

            StockService.update_quantities(db, stock.id, new_quantity, stock.quantity_reserved)
            movement_id = MovementService.append(
                db,
                stock_id=stock.id,
                change_qty=change_qty,
                movement_type=MovementType.ADJUSTMENT,
                reference=f"Manual adjustment - {reason}",
                created_by=created_by,
                note=f"Stock adjusted from {old_quantity} to {new_quantity}. Reason: {reason}",
            )

            result = {
                "stock_id": stock.id,
                "movement_id": movement_id,
                "product_id": product_id,
                "variant_id": variant_id,
                "warehouse_id": warehouse_id,
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
                "change_qty": change_qty,
            }

        logger.info(f"Adjusted stock {result['stock_id']}: {old_quantity} -> {new_quantity} ({reason})")
        return result

    @staticmethod
    @retry_on_conflict
    def reserve(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        warehouse_id: int,
        quantity: int,
        reference: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Dict:
        """
        Move ``quantity`` from on-hand to reserved.

        Reserved units are deducted from on-hand (they are no longer
        available to sell) and booked as a ``sale`` movement.
        """
        require_positive_quantity(quantity)

        with atomic(db):
            stock = _load_for_update(db, product_id, variant_id, warehouse_id)
            new_reserved = stock.quantity_reserved + quantity
            new_on_hand = stock.quantity_on_hand - quantity

            if new_on_hand < 0:
                raise InsufficientStock(available=stock.quantity_on_hand, requested=quantity)

            StockService.update_quantities(db, stock.id, new_on_hand, new_reserved)
            movement_id = MovementService.append(
                db,
                stock_id=stock.id,
                change_qty=-quantity,
                movement_type=MovementType.SALE,
                reference=reference,
                created_by=created_by,
                note=f"Stock reserved for {reference}",
            )

            result = {
                "stock_id": stock.id,
                "movement_id": movement_id,
                "product_id": product_id,
                "variant_id": variant_id,
                "warehouse_id": warehouse_id,
                "reserved_quantity": quantity,
                "quantity_on_hand": new_on_hand,
                "quantity_reserved": new_reserved,
            }

        logger.info(f"Reserved {quantity} on stock {result['stock_id']} (ref={reference})")
        return result

    @staticmethod
    @retry_on_conflict
    def release(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        warehouse_id: int,
        quantity: int,
        reference: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Dict:
        """Return ``quantity`` to on-hand; reserved is clamped at zero"""
        require_positive_quantity(quantity)

        with atomic(db):
            stock = _load_for_update(db, product_id, variant_id, warehouse_id)
            new_reserved = max(0, stock.quantity_reserved - quantity)
            new_on_hand = stock.quantity_on_hand + quantity

            StockService.update_quantities(db, stock.id, new_on_hand, new_reserved)
            movement_id = MovementService.append(
                db,
                stock_id=stock.id,
                change_qty=quantity,
                movement_type=MovementType.RETURN,
                reference=reference,
                created_by=created_by,
                note=f"Reserved stock released for {reference}",
            )

            result = {
                "stock_id": stock.id,
                "movement_id": movement_id,
                "product_id": product_id,
                "variant_id": variant_id,
                "warehouse_id": warehouse_id,
                "released_quantity": quantity,
                "quantity_on_hand": new_on_hand,
                "quantity_reserved": new_reserved,
            }

        logger.info(f"Released {quantity} on stock {result['stock_id']} (ref={reference})")
        return result
