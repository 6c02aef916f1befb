"""
Category, Product & Variant Models
"""
from sqlalchemy import Column, String, Numeric, Boolean, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship, validates
from stockledger.core import Base
from .base import IdMixin, TimestampMixin

class Category(Base, IdMixin, TimestampMixin):
    """Product Category"""
    __tablename__ = "categories"

    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text)

    # Relationships
    products = relationship("Product", back_populates="category")

class Product(Base, IdMixin, TimestampMixin):
    """Product Master"""
    __tablename__ = "products"

    sku = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(300), nullable=False)
    description = Column(Text)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    brand = Column(String(100))
    price = Column(Numeric(12, 2), default=0)
    is_active = Column(Boolean, default=True)

    # Relationships
    category = relationship("Category", back_populates="products")
    variants = relationship("ProductVariant", back_populates="product", passive_deletes=True)
    stock_records = relationship("StockRecord", back_populates="product", passive_deletes=True)

class ProductVariant(Base, IdMixin, TimestampMixin):
    """Product Variant (size, colour, ...)"""
    __tablename__ = "product_variants"

    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    attributes = Column(JSON)  # {"size": "M", "color": "red"}
    additional_price = Column(Numeric(12, 2), default=0)
    is_active = Column(Boolean, default=True)

    # Relationships
    product = relationship("Product", back_populates="variants")
    stock_records = relationship("StockRecord", back_populates="variant", passive_deletes=True)

    @validates("attributes")
    def validate_attributes(self, key, value):
        """Attributes are a flat map of string names to string values"""
        if value is None:
            return None
        if not isinstance(value, dict):
            raise ValueError("Variant attributes must be a mapping of name to value")
        return {str(k): str(v) for k, v in value.items()}
