"""
Master Tables: Warehouse
"""
from sqlalchemy import Column, String, Boolean, Text
from sqlalchemy.orm import relationship
from stockledger.core import Base
from .base import IdMixin, TimestampMixin

class Warehouse(Base, IdMixin, TimestampMixin):
    """Warehouse"""
    __tablename__ = "warehouses"

    name = Column(String(200), nullable=False)
    address = Column(Text)
    phone = Column(String(50))
    is_default = Column(Boolean, default=False)

    # Relationships
    stock_records = relationship("StockRecord", back_populates="warehouse", passive_deletes=True)
