import os

# Point the engine at an in-memory SQLite database before the app is imported
os.environ["DATABASE_URI"] = "sqlite://"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from stockledger.core import Base, engine, SessionLocal, get_db
from stockledger.models import Category, Product, ProductVariant, Warehouse, StockRecord
from stockledger.services import StockService


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def catalog(db):
    """Two warehouses, one plain product and one product with a variant"""
    category = Category(name="Apparel")
    db.add(category)
    db.flush()

    main = Warehouse(name="Bangkok Main", is_default=True)
    overflow = Warehouse(name="Chiang Mai Overflow")
    empty = Warehouse(name="Phuket Empty")
    widget = Product(sku="WID-001", name="Widget", category_id=category.id, price=Decimal("9.90"))
    shirt = Product(sku="SHIRT-001", name="Shirt", category_id=category.id, price=Decimal("19.90"))
    db.add_all([main, overflow, empty, widget, shirt])
    db.flush()

    shirt_m = ProductVariant(product_id=shirt.id, sku="SHIRT-001-M", attributes={"size": "M", "color": "blue"})
    db.add(shirt_m)
    db.commit()

    return {
        "main": main.id,
        "overflow": overflow.id,
        "empty": empty.id,
        "widget": widget.id,
        "shirt": shirt.id,
        "shirt_m": shirt_m.id,
    }


@pytest.fixture()
def make_stock(db):
    """Insert a stock record directly, bypassing the ledger"""
    def _make(product_id, warehouse_id, on_hand=0, reserved=0, reorder=0, cost="0", variant_id=None):
        record = StockRecord(
            product_id=product_id,
            variant_id=variant_id,
            warehouse_id=warehouse_id,
            quantity_on_hand=on_hand,
            quantity_reserved=reserved,
            min_reorder_level=reorder,
            last_cost=Decimal(cost),
            initial_quantity=on_hand,
        )
        db.add(record)
        db.commit()
        return record.id
    return _make


@pytest.fixture()
def client(db):
    from main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _insert_competing_record(product_id, warehouse_id, on_hand, variant_id=None):
    """Commit a record from another session, as a concurrent request would"""
    other = SessionLocal()
    try:
        other.add(StockRecord(
            product_id=product_id,
            variant_id=variant_id,
            warehouse_id=warehouse_id,
            quantity_on_hand=on_hand,
            initial_quantity=on_hand,
        ))
        other.commit()
    finally:
        other.close()


@pytest.fixture()
def lose_create_race(monkeypatch):
    """
    Make the first locked lookup of one warehouse miss a record that another
    request commits at that moment; later lookups see it.
    """
    def _arm(product_id, warehouse_id, competitor_on_hand):
        original = StockService.lock_stock
        calls = []

        def racing_lock(db_, product_id_, variant_id_, warehouse_id_):
            if warehouse_id_ == warehouse_id:
                calls.append(warehouse_id_)
                if len(calls) == 1:
                    _insert_competing_record(product_id, warehouse_id, competitor_on_hand)
                    return None
            return original(db_, product_id_, variant_id_, warehouse_id_)

        monkeypatch.setattr(StockService, "lock_stock", staticmethod(racing_lock))
        return calls
    return _arm
