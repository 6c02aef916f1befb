"""
Stock Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from datetime import datetime

from stockledger.models.stock import MovementType

# ---------- Requests ----------

class StockUpsert(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    warehouse_id: int
    quantity_on_hand: int = Field(0, ge=0)
    quantity_reserved: int = Field(0, ge=0)
    min_reorder_level: int = Field(0, ge=0)
    last_cost: Decimal = Decimal("0")
    created_by: Optional[str] = None

class StockAdjust(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    warehouse_id: int
    new_quantity: int = Field(..., ge=0)
    reason: str
    created_by: Optional[str] = None

class StockReserve(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    warehouse_id: int
    quantity: int = Field(..., gt=0)
    reference: Optional[str] = None
    created_by: Optional[str] = None

class StockRelease(StockReserve):
    pass

class StockTransfer(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: int = Field(..., gt=0)
    reference: Optional[str] = None
    created_by: Optional[str] = None

# ---------- Responses ----------

class StockRecordResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int]
    warehouse_id: int
    quantity_on_hand: int
    quantity_reserved: int
    min_reorder_level: int
    last_cost: Decimal
    updated_at: Optional[datetime] = None
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    variant_sku: Optional[str] = None
    warehouse_name: Optional[str] = None

    class Config:
        from_attributes = True

class StockMovementResponse(BaseModel):
    id: int
    stock_id: int
    change_qty: int
    movement_type: MovementType
    reference: Optional[str]
    created_by: Optional[str]
    note: Optional[str]
    created_at: Optional[datetime]
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    product_name: Optional[str] = None
    warehouse_name: Optional[str] = None

    class Config:
        from_attributes = True

class MovementStat(BaseModel):
    movement_type: MovementType
    movement_count: int
    total_qty_change: int
    avg_qty_change: float
