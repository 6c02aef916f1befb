"""
Stock & Movement Ledger Models
"""
import enum

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, ForeignKey, Text, Index, CheckConstraint, Enum, event, func
)
from sqlalchemy.orm import relationship
from stockledger.core import Base
from .base import IdMixin

class MovementType(str, enum.Enum):
    ADJUSTMENT = "adjustment"
    SALE = "sale"
    RETURN = "return"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"

class StockRecord(Base, IdMixin):
    """On-hand / reserved quantities for one (product, variant, warehouse)"""
    __tablename__ = "stock"

    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)  # NULL = base product
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True)

    # Quantities
    quantity_on_hand = Column(Integer, nullable=False, default=0)
    quantity_reserved = Column(Integer, nullable=False, default=0)
    min_reorder_level = Column(Integer, nullable=False, default=0)
    last_cost = Column(Numeric(12, 2), nullable=False, default=0)
    initial_quantity = Column(Integer, nullable=False, default=0)  # on_hand at creation, ledger replay base

    # Optimistic concurrency
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    product = relationship("Product", back_populates="stock_records")
    variant = relationship("ProductVariant", back_populates="stock_records")
    warehouse = relationship("Warehouse", back_populates="stock_records")
    movements = relationship("StockMovement", back_populates="stock", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("quantity_on_hand >= 0", name="ck_stock_on_hand_non_negative"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def product_name(self):
        return self.product.name if self.product else None

    @property
    def product_sku(self):
        return self.product.sku if self.product else None

    @property
    def variant_sku(self):
        return self.variant.sku if self.variant else None

    @property
    def warehouse_name(self):
        return self.warehouse.name if self.warehouse else None

    def __repr__(self):
        return (
            f"<StockRecord {self.id} p={self.product_id} v={self.variant_id} w={self.warehouse_id} "
            f"on_hand={self.quantity_on_hand} reserved={self.quantity_reserved}>"
        )

# One record per triple; COALESCE makes the "no variant" row unique too
STOCK_KEY_INDEX = "uq_stock_product_variant_warehouse"

Index(
    STOCK_KEY_INDEX,
    StockRecord.product_id,
    func.coalesce(StockRecord.variant_id, 0),
    StockRecord.warehouse_id,
    unique=True,
)

class StockMovement(Base, IdMixin):
    """Stock Movement Ledger (append-only)"""
    __tablename__ = "stock_movements"

    stock_id = Column(Integer, ForeignKey("stock.id", ondelete="CASCADE"), nullable=False, index=True)

    # Movement info
    change_qty = Column(Integer, nullable=False)  # Positive = increase, negative = decrease
    movement_type = Column(
        Enum(MovementType, name="movement_type", native_enum=False, length=20,
             values_callable=lambda types: [t.value for t in types]),
        nullable=False,
        index=True,
    )

    # Reference
    reference = Column(String(255))  # Order number, transfer id, ...

    # Metadata
    note = Column(Text)
    created_by = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Relationships
    stock = relationship("StockRecord", back_populates="movements")

    # Display helpers, resolved through the owning stock record
    @property
    def product_id(self):
        return self.stock.product_id if self.stock else None

    @property
    def variant_id(self):
        return self.stock.variant_id if self.stock else None

    @property
    def warehouse_id(self):
        return self.stock.warehouse_id if self.stock else None

    @property
    def product_name(self):
        return self.stock.product_name if self.stock else None

    @property
    def warehouse_name(self):
        return self.stock.warehouse_name if self.stock else None

    def __repr__(self):
        return f"<StockMovement {self.id} stock={self.stock_id} {self.movement_type.value} {self.change_qty:+d}>"

@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise ValueError(f"Stock movement {target.id} is immutable")

@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise ValueError(f"Stock movement {target.id} is immutable")
