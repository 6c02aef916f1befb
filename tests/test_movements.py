from datetime import datetime, timedelta, timezone

import pytest

from stockledger.core import SessionLocal, atomic, settings
from stockledger.core.exceptions import ConcurrencyConflict, ValidationError, NotFound
from stockledger.models import StockRecord, StockMovement, MovementType
from stockledger.services import (
    MovementService, ReservationService, StockService, TransferService
)


@pytest.fixture()
def busy_stock(db, catalog, make_stock):
    """A widget record in the main warehouse with some history"""
    stock_id = make_stock(catalog["widget"], catalog["main"], on_hand=100)
    ReservationService.reserve(db, catalog["widget"], None, catalog["main"], 10, "SO-1")
    ReservationService.reserve(db, catalog["widget"], None, catalog["main"], 5, "SO-2")
    ReservationService.release(db, catalog["widget"], None, catalog["main"], 3, "SO-2")
    return stock_id


def test_append_returns_new_id(db, catalog, make_stock):
    stock_id = make_stock(catalog["widget"], catalog["main"], on_hand=1)

    with atomic(db):
        movement_id = MovementService.append(db, stock_id, 4, "return", "RMA-1", "dave", "customer return")

    movement = db.get(StockMovement, movement_id)
    assert movement.movement_type == MovementType.RETURN
    assert movement.created_at is not None


def test_append_rejects_unknown_type(db, catalog, make_stock):
    stock_id = make_stock(catalog["widget"], catalog["main"], on_hand=1)

    with pytest.raises(ValidationError):
        MovementService.append(db, stock_id, 1, "gift")


def test_get_by_stock_id_is_newest_first(db, busy_stock):
    movements = MovementService.get_by_stock_id(db, busy_stock)

    assert [m.change_qty for m in movements] == [3, -5, -10]
    assert movements[0].product_name == "Widget"
    assert movements[0].warehouse_name == "Bangkok Main"


def test_get_by_movement_type_and_limit(db, busy_stock):
    sales = MovementService.get_by_movement_type(db, "sale")
    latest_sale = MovementService.get_by_movement_type(db, MovementType.SALE, limit=1)

    assert [m.reference for m in sales] == ["SO-2", "SO-1"]
    assert [m.reference for m in latest_sale] == ["SO-2"]

    with pytest.raises(ValidationError):
        MovementService.get_by_movement_type(db, "shrinkage")


def test_get_recent_spans_all_stock(db, catalog, busy_stock):
    TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 2, "TR-9")

    recent = MovementService.get_recent(db, limit=2)

    assert [m.movement_type for m in recent] == [MovementType.TRANSFER_IN, MovementType.TRANSFER_OUT]
    assert len(MovementService.get_recent(db)) == 5


def test_movement_stats_groups_by_type_within_window(db, busy_stock):
    db.add(StockMovement(
        stock_id=busy_stock,
        change_qty=5,
        movement_type=MovementType.RETURN,
        reference="OLD",
        created_at=datetime.now(timezone.utc) - timedelta(days=60),
    ))
    db.commit()

    recent = MovementService.get_movement_stats(db, days=30)
    wide = MovementService.get_movement_stats(db, days=90)

    assert recent == [
        {"movement_type": MovementType.SALE, "movement_count": 2, "total_qty_change": -15, "avg_qty_change": -7.5},
        {"movement_type": MovementType.RETURN, "movement_count": 1, "total_qty_change": 3, "avg_qty_change": 3.0},
    ]
    assert {row["movement_type"]: row["movement_count"] for row in wide} == {
        MovementType.SALE: 2,
        MovementType.RETURN: 2,
    }


def test_movement_stats_scoped_to_warehouse(db, catalog, busy_stock):
    TransferService.transfer(db, catalog["widget"], None, catalog["main"], catalog["overflow"], 4, "TR-1")

    overflow = MovementService.get_movement_stats(db, warehouse_id=catalog["overflow"])

    assert overflow == [
        {"movement_type": MovementType.TRANSFER_IN, "movement_count": 1, "total_qty_change": 4, "avg_qty_change": 4.0},
    ]


def test_reconcile_detects_writes_that_bypass_the_ledger(db, catalog, busy_stock, make_stock):
    healthy = MovementService.reconcile(db, busy_stock)
    assert healthy["consistent"] is True
    assert healthy["ledger_total"] == -12
    assert healthy["quantity_on_hand"] == 88

    # A write outside the engine breaks the replay invariant
    with atomic(db):
        StockService.update_quantities(db, busy_stock, 70, 0)

    broken = MovementService.reconcile(db, busy_stock)
    assert broken["consistent"] is False
    assert broken["expected_on_hand"] == 88

    make_stock(catalog["shirt"], catalog["main"], on_hand=4)
    mismatches = MovementService.reconcile_all(db)
    assert [row["stock_id"] for row in mismatches] == [busy_stock]
    assert MovementService.reconcile_all(db, warehouse_id=catalog["overflow"]) == []

    with pytest.raises(NotFound):
        MovementService.reconcile(db, 999)


def test_ledger_entries_are_immutable(db, busy_stock):
    movement = MovementService.get_by_stock_id(db, busy_stock)[0]

    movement.note = "rewritten"
    with pytest.raises(ValueError):
        db.flush()
    db.rollback()

    movement = MovementService.get_by_stock_id(db, busy_stock)[0]
    db.delete(movement)
    with pytest.raises(ValueError):
        db.flush()
    db.rollback()

    assert db.query(StockMovement).count() == 3


def test_stale_write_raises_concurrency_conflict(db, catalog, make_stock):
    stock_id = make_stock(catalog["widget"], catalog["main"], on_hand=10)
    mine = db.get(StockRecord, stock_id)
    assert mine.version == 1

    other = SessionLocal()
    try:
        theirs = other.get(StockRecord, stock_id)
        theirs.quantity_on_hand = 7
        other.commit()
    finally:
        other.close()

    with pytest.raises(ConcurrencyConflict):
        with atomic(db):
            StockService.update_quantities(db, stock_id, 5, 0)

    db.expire_all()
    assert db.get(StockRecord, stock_id).quantity_on_hand == 7


def test_operation_is_retried_after_conflict(db, catalog, make_stock, monkeypatch):
    stock_id = make_stock(catalog["widget"], catalog["main"], on_hand=10)
    original = StockService.update_quantities
    calls = []

    def flaky(db_, *args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise ConcurrencyConflict("simulated lost race")
        return original(db_, *args, **kwargs)

    monkeypatch.setattr(StockService, "update_quantities", staticmethod(flaky))

    ReservationService.reserve(db, catalog["widget"], None, catalog["main"], 3, "SO-9")

    db.expire_all()
    assert len(calls) == 2
    assert db.get(StockRecord, stock_id).quantity_on_hand == 7
    assert db.query(StockMovement).count() == 1


def test_conflict_surfaces_after_bounded_retries(db, catalog, make_stock, monkeypatch):
    stock_id = make_stock(catalog["widget"], catalog["main"], on_hand=10)
    calls = []

    def always_conflict(db_, *args, **kwargs):
        calls.append(args)
        raise ConcurrencyConflict("simulated lost race")

    monkeypatch.setattr(StockService, "update_quantities", staticmethod(always_conflict))

    with pytest.raises(ConcurrencyConflict):
        ReservationService.adjust(db, catalog["widget"], None, catalog["main"], 1, "recount")

    db.expire_all()
    assert len(calls) == settings.LEDGER_MAX_RETRIES
    assert db.get(StockRecord, stock_id).quantity_on_hand == 10
    assert db.query(StockMovement).count() == 0
