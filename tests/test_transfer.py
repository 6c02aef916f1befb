from decimal import Decimal

import pytest

from stockledger.core.exceptions import NotFound, InsufficientStock, ValidationError
from stockledger.models import StockRecord, StockMovement, MovementType
from stockledger.services import TransferService, StockService, MovementService


def test_transfer_creates_destination_record(db, catalog, make_stock):
    source_id = make_stock(catalog["widget"], catalog["main"], on_hand=30, reserved=4, reorder=6, cost="4.25")

    result = TransferService.transfer(
        db, catalog["widget"], None, catalog["main"], catalog["overflow"], 12, "TR-001", "carol"
    )

    db.expire_all()
    source = db.get(StockRecord, source_id)
    destination = StockService.get_stock(db, catalog["widget"], None, catalog["overflow"])

    assert result["destination_created"] is True
    assert (source.quantity_on_hand, source.quantity_reserved) == (18, 4)
    assert (destination.quantity_on_hand, destination.quantity_reserved) == (12, 0)
    assert destination.min_reorder_level == 6
    assert destination.last_cost == Decimal("4.25")

    movements = db.query(StockMovement).filter(StockMovement.reference == "TR-001").all()
    assert sorted((m.stock_id, m.change_qty, m.movement_type) for m in movements) == sorted([
        (source_id, -12, MovementType.TRANSFER_OUT),
        (destination.id, 12, MovementType.TRANSFER_IN),
    ])
    assert db.query(StockMovement).count() == 2
    assert MovementService.reconcile(db, source_id)["consistent"] is True
    assert MovementService.reconcile(db, destination.id)["consistent"] is True


def test_transfer_adds_to_existing_destination(db, catalog, make_stock):
    source_id = make_stock(catalog["shirt"], catalog["main"], on_hand=10, variant_id=catalog["shirt_m"])
    dest_id = make_stock(catalog["shirt"], catalog["overflow"], on_hand=3, reserved=2, variant_id=catalog["shirt_m"])

    result = TransferService.transfer(
        db, catalog["shirt"], catalog["shirt_m"], catalog["main"], catalog["overflow"], 10, "TR-002"
    )

    db.expire_all()
    assert result["destination_created"] is False
    assert result["destination_stock_id"] == dest_id
    assert db.get(StockRecord, source_id).quantity_on_hand == 0
    dest = db.get(StockRecord, dest_id)
    assert (dest.quantity_on_hand, dest.quantity_reserved) == (13, 2)
    assert db.query(StockRecord).count() == 2


def test_transfer_ignores_reserved_on_source(db, catalog, make_stock):
    source_id = make_stock(catalog["widget"], catalog["main"], on_hand=5, reserved=50)

    TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 5)

    db.expire_all()
    source = db.get(StockRecord, source_id)
    assert (source.quantity_on_hand, source.quantity_reserved) == (0, 50)


def test_transfer_with_insufficient_stock_leaves_no_trace(db, catalog, make_stock):
    source_id = make_stock(catalog["widget"], catalog["main"], on_hand=5)

    with pytest.raises(InsufficientStock):
        TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 6, "TR-003")

    db.expire_all()
    assert db.get(StockRecord, source_id).quantity_on_hand == 5
    assert StockService.get_stock(db, catalog["widget"], None, catalog["overflow"]) is None
    assert db.query(StockMovement).count() == 0


def test_transfer_failure_after_writes_rolls_everything_back(db, catalog, make_stock, monkeypatch):
    source_id = make_stock(catalog["widget"], catalog["main"], on_hand=9)
    original_append = MovementService.append
    calls = []

    def failing_append(db_, *args, **kwargs):
        calls.append(kwargs.get("movement_type"))
        if len(calls) == 2:
            raise RuntimeError("ledger unavailable")
        return original_append(db_, *args, **kwargs)

    monkeypatch.setattr(MovementService, "append", staticmethod(failing_append))

    with pytest.raises(RuntimeError):
        TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 4)

    db.expire_all()
    assert db.get(StockRecord, source_id).quantity_on_hand == 9
    assert StockService.get_stock(db, catalog["widget"], None, catalog["overflow"]) is None
    assert db.query(StockMovement).count() == 0


def test_transfer_without_source_record_is_not_found(db, catalog):
    with pytest.raises(NotFound):
        TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 1)


def test_transfer_to_unknown_warehouse_is_not_found(db, catalog, make_stock):
    make_stock(catalog["widget"], catalog["main"], on_hand=5)

    with pytest.raises(NotFound):
        TransferService.transfer(db, catalog["widget"], None, catalog["main"], 999, 1)

    assert db.query(StockMovement).count() == 0


def test_transfer_to_same_warehouse_is_rejected(db, catalog, make_stock):
    make_stock(catalog["widget"], catalog["main"], on_hand=5)

    with pytest.raises(ValidationError):
        TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["main"], 1)


def test_transfer_retries_when_destination_is_created_concurrently(db, catalog, make_stock, lose_create_race):
    source_id = make_stock(catalog["widget"], catalog["main"], on_hand=10)
    calls = lose_create_race(catalog["widget"], catalog["overflow"], competitor_on_hand=4)

    result = TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 3, "TR-010")

    db.expire_all()
    assert len(calls) == 2
    assert result["destination_created"] is False
    assert db.get(StockRecord, source_id).quantity_on_hand == 7

    destinations = db.query(StockRecord).filter(StockRecord.warehouse_id == catalog["overflow"]).all()
    assert len(destinations) == 1
    assert destinations[0].id == result["destination_stock_id"]
    assert destinations[0].quantity_on_hand == 7

    assert db.query(StockMovement).count() == 2
    assert MovementService.reconcile(db, source_id)["consistent"] is True
    assert MovementService.reconcile(db, destinations[0].id)["consistent"] is True


def test_transfer_locks_each_side_once_in_warehouse_order(db, catalog, make_stock, monkeypatch):
    make_stock(catalog["widget"], catalog["overflow"], on_hand=6)
    original = StockService.lock_stock
    locked = []

    def recording_lock(db_, product_id, variant_id, warehouse_id):
        locked.append(warehouse_id)
        return original(db_, product_id, variant_id, warehouse_id)

    monkeypatch.setattr(StockService, "lock_stock", staticmethod(recording_lock))

    TransferService.transfer(db, catalog["widget"], None, catalog["overflow"], catalog["main"], 2)

    assert locked == sorted([catalog["overflow"], catalog["main"]])
