"""
Stock Service - Stock Record Store
"""
from sqlalchemy.orm import Session, joinedload, contains_eager
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Tuple
from decimal import Decimal
import logging

from stockledger.core import atomic, retry_on_conflict
from stockledger.core.exceptions import NotFound, InsufficientStock, ConcurrencyConflict
from stockledger.models import StockRecord, MovementType, Product, Warehouse, STOCK_KEY_INDEX
from stockledger.schemas.stock import StockUpsert
from .catalog_service import CatalogService
from .movement_service import MovementService

logger = logging.getLogger(__name__)

class StockService:
    """Reads and writes of per-warehouse stock records"""

    @staticmethod
    def _with_names(query):
        return query.options(
            joinedload(StockRecord.product),
            joinedload(StockRecord.variant),
            joinedload(StockRecord.warehouse),
        )

    @staticmethod
    def _filter_key(query, product_id: int, variant_id: Optional[int], warehouse_id: int):
        query = query.filter(
            StockRecord.product_id == product_id,
            StockRecord.warehouse_id == warehouse_id,
        )
        if variant_id is None:
            return query.filter(StockRecord.variant_id.is_(None))
        return query.filter(StockRecord.variant_id == variant_id)

    # ===================== READS =====================

    @staticmethod
    def get_stock(db: Session, product_id: int, variant_id: Optional[int], warehouse_id: int) -> Optional[StockRecord]:
        """Exact-key lookup"""
        query = StockService._with_names(db.query(StockRecord))
        return StockService._filter_key(query, product_id, variant_id, warehouse_id).first()

    @staticmethod
    def get_stock_by_id(db: Session, stock_id: int) -> Optional[StockRecord]:
        return StockService._with_names(db.query(StockRecord)).filter(StockRecord.id == stock_id).first()

    @staticmethod
    def get_stock_by_product(db: Session, product_id: int, variant_id: Optional[int] = None) -> List[StockRecord]:
        """All warehouses holding a product (optionally one variant), by warehouse name"""
        query = db.query(StockRecord).join(StockRecord.warehouse).options(
            contains_eager(StockRecord.warehouse),
            joinedload(StockRecord.product),
            joinedload(StockRecord.variant),
        ).filter(StockRecord.product_id == product_id)

        if variant_id is not None:
            query = query.filter(StockRecord.variant_id == variant_id)

        return query.order_by(Warehouse.name, StockRecord.id).all()

    @staticmethod
    def get_stock_by_warehouse(db: Session, warehouse_id: int) -> List[StockRecord]:
        """All product/variant rows of one warehouse, by product name"""
        return db.query(StockRecord).join(StockRecord.product).options(
            contains_eager(StockRecord.product),
            joinedload(StockRecord.variant),
            joinedload(StockRecord.warehouse),
        ).filter(
            StockRecord.warehouse_id == warehouse_id
        ).order_by(Product.name, StockRecord.id).all()

    @staticmethod
    def get_all_stock(db: Session) -> List[StockRecord]:
        """Full inventory snapshot, by warehouse name then product name"""
        return db.query(StockRecord).join(StockRecord.warehouse).join(StockRecord.product).options(
            contains_eager(StockRecord.warehouse),
            contains_eager(StockRecord.product),
            joinedload(StockRecord.variant),
        ).order_by(Warehouse.name, Product.name, StockRecord.id).all()

    @staticmethod
    def get_low_stock(db: Session, warehouse_id: Optional[int] = None) -> List[StockRecord]:
        """Records at or below their reorder level, most depleted first"""
        query = StockService._with_names(db.query(StockRecord)).filter(
            StockRecord.quantity_on_hand <= StockRecord.min_reorder_level
        )

        if warehouse_id is not None:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)

        return query.order_by(StockRecord.quantity_on_hand.asc(), StockRecord.id).all()

    @staticmethod
    def find_stock(
        db: Session,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        low_stock_only: bool = False,
    ) -> List[StockRecord]:
        """
        Records matching every given filter. Low-stock results come most
        depleted first, the rest by warehouse name then product name.
        """
        query = db.query(StockRecord).join(StockRecord.warehouse).join(StockRecord.product).options(
            contains_eager(StockRecord.warehouse),
            contains_eager(StockRecord.product),
            joinedload(StockRecord.variant),
        )

        if warehouse_id is not None:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)
        if product_id is not None:
            query = query.filter(StockRecord.product_id == product_id)

        if low_stock_only:
            query = query.filter(StockRecord.quantity_on_hand <= StockRecord.min_reorder_level)
            return query.order_by(StockRecord.quantity_on_hand.asc(), StockRecord.id).all()
        return query.order_by(Warehouse.name, Product.name, StockRecord.id).all()

    # ===================== WRITES (inside caller's transaction) =====================

    @staticmethod
    def lock_stock(db: Session, product_id: int, variant_id: Optional[int], warehouse_id: int) -> Optional[StockRecord]:
        """Load a record for update (row lock where the backend supports it)"""
        query = db.query(StockRecord).with_for_update().populate_existing()
        return StockService._filter_key(query, product_id, variant_id, warehouse_id).first()

    @staticmethod
    def update_quantities(db: Session, stock_id: int, new_on_hand: int, new_reserved: int) -> StockRecord:
        """Write both quantity fields of one record; the version check runs on flush"""
        stock = db.get(StockRecord, stock_id)
        if stock is None:
            raise NotFound(f"Stock record {stock_id} not found")
        if new_on_hand < 0:
            raise InsufficientStock(f"Stock record {stock_id} cannot go below zero", available=stock.quantity_on_hand)

        stock.quantity_on_hand = new_on_hand
        stock.quantity_reserved = new_reserved
        db.flush()
        return stock

    @staticmethod
    def create_stock(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        warehouse_id: int,
        quantity_on_hand: int = 0,
        quantity_reserved: int = 0,
        min_reorder_level: int = 0,
        last_cost: Decimal = Decimal("0"),
        initial_quantity: Optional[int] = None,
    ) -> StockRecord:
        """
        Insert a record for the triple. Only a duplicate on the stock key
        means another request created it first; any other constraint
        failure propagates to the caller's transaction.
        """
        stock = StockRecord(
            product_id=product_id,
            variant_id=variant_id,
            warehouse_id=warehouse_id,
            quantity_on_hand=quantity_on_hand,
            quantity_reserved=quantity_reserved,
            min_reorder_level=min_reorder_level,
            last_cost=last_cost,
            initial_quantity=quantity_on_hand if initial_quantity is None else initial_quantity,
        )
        db.add(stock)
        try:
            db.flush()
        except IntegrityError as e:
            if STOCK_KEY_INDEX not in str(e.orig):
                raise
            raise ConcurrencyConflict(
                f"Stock record for product {product_id} / variant {variant_id} / warehouse {warehouse_id} created concurrently"
            ) from e

        logger.info(f"Created stock record {stock.id} (product={product_id}, variant={variant_id}, warehouse={warehouse_id})")
        return stock

    @staticmethod
    def get_or_create(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        warehouse_id: int,
        **defaults,
    ) -> Tuple[StockRecord, bool]:
        """Locked lookup, inserting the record when the triple has none"""
        stock = StockService.lock_stock(db, product_id, variant_id, warehouse_id)
        if stock is not None:
            return stock, False
        return StockService.create_stock(db, product_id, variant_id, warehouse_id, **defaults), True

    # ===================== UPSERT =====================

    @staticmethod
    @retry_on_conflict
    def upsert_stock(db: Session, data: StockUpsert) -> StockRecord:
        """
        Insert a stock record or overwrite quantities, reorder level and cost
        of the existing one. An on-hand change on an existing record is
        booked as an adjustment so the ledger still replays to on-hand.
        """
        with atomic(db):
            CatalogService.ensure_item_exists(db, data.product_id, data.variant_id)
            CatalogService.ensure_warehouse_exists(db, data.warehouse_id)

            stock, created = StockService.get_or_create(
                db,
                data.product_id,
                data.variant_id,
                data.warehouse_id,
                quantity_on_hand=data.quantity_on_hand,
                quantity_reserved=data.quantity_reserved,
                min_reorder_level=data.min_reorder_level,
                last_cost=data.last_cost,
            )

            if not created:
                old_on_hand = stock.quantity_on_hand
                delta = data.quantity_on_hand - old_on_hand
                stock.min_reorder_level = data.min_reorder_level
                stock.last_cost = data.last_cost
                StockService.update_quantities(db, stock.id, data.quantity_on_hand, data.quantity_reserved)

                if delta != 0:
                    MovementService.append(
                        db,
                        stock_id=stock.id,
                        change_qty=delta,
                        movement_type=MovementType.ADJUSTMENT,
                        reference="Stock upsert",
                        created_by=data.created_by,
                        note=f"Stock record overwritten from {old_on_hand} to {data.quantity_on_hand}",
                    )
                logger.info(f"Upserted stock record {stock.id}: on_hand {old_on_hand} -> {data.quantity_on_hand}")

            stock_id = stock.id

        return StockService.get_stock_by_id(db, stock_id)
