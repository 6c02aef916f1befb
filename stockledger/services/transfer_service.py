"""
Transfer Service - move stock between two warehouses
"""
from sqlalchemy.orm import Session
from typing import Dict, Optional
import logging

from stockledger.core import atomic, retry_on_conflict
from stockledger.core.exceptions import NotFound, InsufficientStock, ValidationError
from stockledger.models import MovementType
from .catalog_service import CatalogService
from .movement_service import MovementService
from .reservation_service import require_positive_quantity
from .stock_service import StockService

logger = logging.getLogger(__name__)

class TransferService:

    @staticmethod
    @retry_on_conflict
    def transfer(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity: int,
        reference: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Dict:
        """
        Debit the source warehouse and credit the destination.

        The destination record is created on demand with the source's reorder
        level and cost. Both record writes and both ledger entries commit
        together or not at all. Only on-hand is checked on the source;
        reserved units are not consulted.
        """
        require_positive_quantity(quantity)
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("Source and destination warehouse must differ")

        with atomic(db):
            CatalogService.ensure_item_exists(db, product_id, variant_id)
            CatalogService.ensure_warehouse_exists(db, from_warehouse_id)
            CatalogService.ensure_warehouse_exists(db, to_warehouse_id)

            # Lock both sides in warehouse order so opposite transfers cannot deadlock
            locked = {
                warehouse_id: StockService.lock_stock(db, product_id, variant_id, warehouse_id)
                for warehouse_id in sorted((from_warehouse_id, to_warehouse_id))
            }
            source = locked[from_warehouse_id]
            destination = locked[to_warehouse_id]
            if source is None:
                raise NotFound("Source stock record not found")

            if source.quantity_on_hand < quantity:
                raise InsufficientStock(
                    "Insufficient stock for transfer",
                    available=source.quantity_on_hand,
                    requested=quantity,
                )

            StockService.update_quantities(
                db, source.id, source.quantity_on_hand - quantity, source.quantity_reserved
            )

            created = destination is None
            if created:
                destination = StockService.create_stock(
                    db,
                    product_id,
                    variant_id,
                    to_warehouse_id,
                    quantity_on_hand=quantity,
                    quantity_reserved=0,
                    min_reorder_level=source.min_reorder_level,
                    last_cost=source.last_cost,
                    initial_quantity=0,  # the transfer_in entry below books the quantity
                )
            else:
                StockService.update_quantities(
                    db, destination.id, destination.quantity_on_hand + quantity, destination.quantity_reserved
                )

            out_id = MovementService.append(
                db,
                stock_id=source.id,
                change_qty=-quantity,
                movement_type=MovementType.TRANSFER_OUT,
                reference=reference,
                created_by=created_by,
                note=f"Transferred to warehouse {to_warehouse_id}",
            )
            in_id = MovementService.append(
                db,
                stock_id=destination.id,
                change_qty=quantity,
                movement_type=MovementType.TRANSFER_IN,
                reference=reference,
                created_by=created_by,
                note=f"Transferred from warehouse {from_warehouse_id}",
            )

            result = {
                "product_id": product_id,
                "variant_id": variant_id,
                "from_warehouse_id": from_warehouse_id,
                "to_warehouse_id": to_warehouse_id,
                "quantity": quantity,
                "reference": reference,
                "source_stock_id": source.id,
                "destination_stock_id": destination.id,
                "destination_created": created,
                "movement_ids": [out_id, in_id],
            }

        logger.info(
            f"Transferred {quantity} of product {product_id}/{variant_id} "
            f"from warehouse {from_warehouse_id} to {to_warehouse_id} (ref={reference})"
        )
        return result
