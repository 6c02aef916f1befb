"""
Catalog Service - existence checks against product / variant / warehouse
"""
from sqlalchemy.orm import Session
from typing import Optional

from stockledger.core.exceptions import NotFound
from stockledger.models import Product, ProductVariant, Warehouse

class CatalogService:
    """Lookups the stock engine needs from the catalog tables"""

    @staticmethod
    def get_product(db: Session, product_id: int) -> Optional[Product]:
        return db.get(Product, product_id)

    @staticmethod
    def get_variant(db: Session, variant_id: int) -> Optional[ProductVariant]:
        return db.get(ProductVariant, variant_id)

    @staticmethod
    def get_warehouse(db: Session, warehouse_id: int) -> Optional[Warehouse]:
        return db.get(Warehouse, warehouse_id)

    @staticmethod
    def ensure_item_exists(db: Session, product_id: int, variant_id: Optional[int] = None) -> None:
        """Raise NotFound unless the product (and variant, if given) exist"""
        if CatalogService.get_product(db, product_id) is None:
            raise NotFound(f"Product {product_id} not found")
        if variant_id is not None:
            variant = CatalogService.get_variant(db, variant_id)
            if variant is None or variant.product_id != product_id:
                raise NotFound(f"Variant {variant_id} not found for product {product_id}")

    @staticmethod
    def ensure_warehouse_exists(db: Session, warehouse_id: int) -> None:
        if CatalogService.get_warehouse(db, warehouse_id) is None:
            raise NotFound(f"Warehouse {warehouse_id} not found")
