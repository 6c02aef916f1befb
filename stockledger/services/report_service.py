"""
Report Service - read-only inventory summaries
"""
from sqlalchemy.orm import Session
from sqlalchemy import func, case
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Optional

from stockledger.models import StockRecord, Product, ProductVariant, Warehouse

MONEY_QUANT = Decimal("0.01")


def _to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


class ReportService:

    @staticmethod
    def get_stock_summary(db: Session, warehouse_id: Optional[int] = None) -> List[Dict]:
        """Totals per product/variant across warehouses"""
        query = db.query(
            StockRecord.product_id,
            StockRecord.variant_id,
            Product.sku.label("product_sku"),
            Product.name.label("product_name"),
            ProductVariant.sku.label("variant_sku"),
            func.count(StockRecord.id).label("warehouse_count"),
            func.sum(StockRecord.quantity_on_hand).label("on_hand"),
            func.sum(StockRecord.quantity_reserved).label("reserved"),
            func.sum(StockRecord.quantity_on_hand * StockRecord.last_cost).label("stock_value"),
            func.sum(
                case((StockRecord.quantity_on_hand <= StockRecord.min_reorder_level, 1), else_=0)
            ).label("low_stock_count"),
        ).join(
            Product, StockRecord.product_id == Product.id
        ).outerjoin(
            ProductVariant, StockRecord.variant_id == ProductVariant.id
        )

        if warehouse_id is not None:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)

        rows = query.group_by(
            StockRecord.product_id, StockRecord.variant_id, Product.sku, Product.name, ProductVariant.sku
        ).order_by(Product.name, ProductVariant.sku).all()

        return [
            {
                "product_id": r.product_id,
                "variant_id": r.variant_id,
                "product_sku": r.product_sku,
                "product_name": r.product_name,
                "variant_sku": r.variant_sku,
                "warehouse_count": int(r.warehouse_count),
                "on_hand": int(r.on_hand or 0),
                "reserved": int(r.reserved or 0),
                "stock_value": _to_money(r.stock_value),
                "low_stock_count": int(r.low_stock_count or 0),
            }
            for r in rows
        ]

    @staticmethod
    def get_inventory_valuation(db: Session, warehouse_id: Optional[int] = None) -> List[Dict]:
        """Units and value (on_hand x last_cost) per warehouse"""
        query = db.query(
            Warehouse.id.label("warehouse_id"),
            Warehouse.name.label("warehouse_name"),
            func.count(StockRecord.id).label("record_count"),
            func.sum(StockRecord.quantity_on_hand).label("total_units"),
            func.sum(StockRecord.quantity_on_hand * StockRecord.last_cost).label("total_value"),
        ).join(
            StockRecord, StockRecord.warehouse_id == Warehouse.id
        )

        if warehouse_id is not None:
            query = query.filter(Warehouse.id == warehouse_id)

        rows = query.group_by(Warehouse.id, Warehouse.name).order_by(Warehouse.name).all()

        return [
            {
                "warehouse_id": r.warehouse_id,
                "warehouse_name": r.warehouse_name,
                "record_count": int(r.record_count),
                "total_units": int(r.total_units or 0),
                "total_value": _to_money(r.total_value),
            }
            for r in rows
        ]
