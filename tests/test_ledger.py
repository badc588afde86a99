from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core_common import InsufficientStock, MaterialNotFound, PersistenceError, ValidationError
from core_ledger import MaterialLedger, compute_stock_status, month_bounds
from core_models import Material, StockStatus
from core_store import MemoryStorage, ShopStore
from tests.helpers_tz import new_york_tz  # noqa: F401

NOW = datetime(2026, 5, 15, 12, 0, tzinfo=timezone.utc)


def _clock():
    return NOW


def _store(weight=1.0, unit_cost=10000, consumption=None, storage_cls=MemoryStorage):
    return ShopStore(storage_cls({
        "materials": [
            {"id": 1, "type": "PLA", "color": "Negro", "weightOnHand": weight, "unitCost": unit_cost},
            {"id": 2, "type": "PETG", "color": "Azul", "weightOnHand": 0.3, "unitCost": 12000},
        ],
        "consumption": consumption or [],
    }))


def _event(id, material_id, cost, ts, grams=100):
    return {"id": id, "materialId": material_id, "quantityGrams": grams, "reason": "Prueba",
            "cost": cost, "timestamp": ts}


def test_consumption_decrements_stock_and_costs_by_unit_price():
    store = _store()
    ledger = MaterialLedger(store, clock=_clock)

    event = ledger.record_consumption(1, 500, "Prueba")

    assert event.id == 1
    assert event.cost == Decimal(5000)
    assert event.timestamp == NOW.isoformat()
    assert store.find_material(1).weight_on_hand == Decimal("0.5")
    assert [e.id for e in store.consumption()] == [1]


def test_unknown_material_changes_nothing():
    store = _store()
    ledger = MaterialLedger(store, clock=_clock)
    before = (store.load("materials"), store.load("consumption"))

    with pytest.raises(MaterialNotFound):
        ledger.record_consumption(99, 10, "Prueba")

    assert (store.load("materials"), store.load("consumption")) == before


def test_exact_stock_is_allowed_one_gram_more_is_not():
    store = _store(weight=1.0)
    ledger = MaterialLedger(store, clock=_clock)

    with pytest.raises(InsufficientStock) as exc:
        ledger.record_consumption(1, 1001, "Prueba")
    assert exc.value.available_kg == Decimal("1.0")
    assert exc.value.requested_kg == Decimal("1.001")
    assert store.load("consumption") == []

    ledger.record_consumption(1, 1000, "Prueba")
    assert store.find_material(1).weight_on_hand == 0

    with pytest.raises(InsufficientStock):
        ledger.record_consumption(1, 1, "Prueba")
    assert len(store.consumption()) == 1


@pytest.mark.parametrize("qty", [0, -5, float("nan"), None, "abc"])
def test_non_positive_or_garbage_quantity_is_rejected(qty):
    ledger = MaterialLedger(_store(), clock=_clock)

    with pytest.raises(ValidationError):
        ledger.record_consumption(1, qty, "Prueba")


def test_ids_continue_after_existing_events_and_keep_foreign_records():
    store = _store(consumption=[_event(7, 2, 10, "2026-05-01T10:00:00+00:00"), {"id": 8, "garbage": True}])
    ledger = MaterialLedger(store, clock=_clock)

    event = ledger.record_consumption(1, 10, "Prueba", order_id=3)

    assert event.id == 9
    assert event.order_id == 3
    raw_ids = [r["id"] for r in store.load("consumption")]
    assert raw_ids == [7, 8, 9]


def test_monthly_summary_counts_only_current_month():
    store = _store(consumption=[
        _event(1, 1, 100, "2026-05-02T09:00:00+00:00"),
        _event(2, 1, 200, "2026-05-14T18:30:00+00:00"),
        _event(3, 1, 50, "2026-04-30T23:59:00+00:00"),
        _event(4, 1, 75, "2026-06-01T00:00:00+00:00"),
    ])
    summary = MaterialLedger(store, clock=_clock).monthly_consumption_summary()

    assert summary.total_cost == Decimal(300)
    assert summary.event_count == 2
    assert summary.total_kg == Decimal("0.2")
    # PETG с 0.3 кг ниже порога 0.5
    assert summary.low_stock_materials == 1


def test_month_bounds_wraps_december():
    start, end = month_bounds(datetime(2025, 12, 31, 23, 0, tzinfo=timezone.utc))

    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_listing_filters_and_sorts_newest_first():
    store = _store(consumption=[
        _event(1, 1, 10, "2026-05-10T10:00:00+00:00"),
        _event(2, 2, 20, "2026-05-12T10:00:00+00:00"),
        _event(3, 1, 30, "2026-03-01T10:00:00+00:00"),
        _event(4, 1, 40, "2026-05-12T10:00:00+00:00"),
    ])
    ledger = MaterialLedger(store, clock=_clock)

    all_ids = [v.event.id for v in ledger.list_consumption()]
    assert all_ids == [2, 4, 1, 3]

    pla_ids = [v.event.id for v in ledger.list_consumption(material_id=1, window_days=30)]
    assert pla_ids == [4, 1]

    views = list(ledger.list_consumption(material_id=2))
    assert views[0].material_label == "PETG - Azul"
    assert views[0].to_dict()["material"] == "PETG - Azul"


def test_listing_is_restartable_and_sees_new_events():
    ledger = MaterialLedger(_store(), clock=_clock)
    listing = ledger.list_consumption()

    assert list(listing) == []
    ledger.record_consumption(1, 10, "Prueba")
    assert len(list(listing)) == 1
    assert len(list(listing)) == 1


def test_listing_labels_deleted_material_and_orders():
    store = ShopStore(MemoryStorage({
        "consumption": [
            {"id": 1, "materialId": 5, "quantityGrams": 10, "reason": "Printing", "cost": 1,
             "timestamp": "2026-05-10T10:00:00+00:00", "orderId": 2},
        ],
        "orders": [{"id": 2, "customer": "Ana", "description": "Llavero"}],
    }))
    view = next(iter(MaterialLedger(store, clock=_clock).list_consumption()))

    assert view.material_label == "Material eliminado"
    assert view.order_label == "Ana - Llavero"


def test_negative_window_is_rejected():
    with pytest.raises(ValidationError):
        MaterialLedger(_store(), clock=_clock).list_consumption(window_days=-1)


@pytest.mark.parametrize("weight,status", [
    (0, StockStatus.DEPLETED),
    (0.1, StockStatus.LOW),
    (0.2, StockStatus.MEDIUM),
    (0.49, StockStatus.MEDIUM),
    (0.5, StockStatus.HIGH),
])
def test_stock_status_thresholds(weight, status):
    material = Material.from_dict({"id": 1, "weightOnHand": weight})

    assert compute_stock_status(material) is status


def test_stock_report_rows():
    rows = MaterialLedger(_store(), clock=_clock).stock_report()

    assert rows[0]["label"] == "PLA - Negro"
    assert rows[0]["stockValue"] == pytest.approx(10000.0)
    assert rows[0]["status"] == "High"
    assert rows[1]["status"] == "Medium"


class FailingMaterialsStorage(MemoryStorage):
    fail = False

    def save(self, key, records):
        if self.fail and key == "materials":
            return False
        return super().save(key, records)


def test_failed_materials_save_rolls_back_event_log():
    store = _store(storage_cls=FailingMaterialsStorage)
    store.storage.fail = True
    ledger = MaterialLedger(store, clock=_clock)

    with pytest.raises(PersistenceError):
        ledger.record_consumption(1, 100, "Prueba")

    assert store.load("consumption") == []
    assert store.find_material(1).weight_on_hand == Decimal("1.0")


def test_add_material_assigns_next_id_and_defaults():
    store = _store()
    m = MaterialLedger(store, clock=_clock).add_material(None, "", 2, 15000)

    assert m.id == 3
    assert m.type == "Sin tipo"
    assert m.color == "Sin color"
    assert store.find_material(3).unit_cost == Decimal(15000)


def test_month_start_uses_offset_of_the_first_day_across_dst(new_york_tz):
    # 15 ноября действует EST (-05:00), а 1 ноября в 00:30 ещё EDT (-04:00)
    now = datetime(2026, 11, 15, 12, 0).astimezone()
    assert now.utcoffset() == timedelta(hours=-5)
    store = _store(consumption=[
        _event(1, 1, 100, "2026-11-01T00:30:00-04:00"),
        _event(2, 1, 40, "2026-10-31T23:30:00-04:00"),
    ])

    summary = MaterialLedger(store, clock=lambda: now).monthly_consumption_summary()
    start, end = month_bounds(now)

    assert summary.event_count == 1
    assert summary.total_cost == Decimal(100)
    assert start.utcoffset() == timedelta(hours=-4)
    assert start == datetime(2026, 11, 1, 4, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 12, 1, 5, 0, tzinfo=timezone.utc)


def test_month_bounds_with_zoneinfo_clock():
    zoneinfo = pytest.importorskip("zoneinfo")
    try:
        tz = zoneinfo.ZoneInfo("America/New_York")
    except zoneinfo.ZoneInfoNotFoundError:
        pytest.skip("no tz database")

    start, end = month_bounds(datetime(2026, 3, 20, 9, 0, tzinfo=tz))

    assert start.utcoffset() == timedelta(hours=-5)
    assert end.utcoffset() == timedelta(hours=-4)
    assert (start.day, start.hour, end.month, end.day) == (1, 0, 4, 1)


def test_update_material_restocks_and_keeps_untouched_fields():
    store = _store(weight=0.1)
    ledger = MaterialLedger(store, clock=_clock)

    m = ledger.update_material(1, weight_kg=2.5)

    assert m.weight_on_hand == Decimal("2.5")
    assert (m.type, m.color, m.unit_cost) == ("PLA", "Negro", Decimal(10000))
    assert store.find_material(1).weight_on_hand == Decimal("2.5")
    assert ledger.record_consumption(1, 2000, "Prueba").cost == Decimal(20000)


def test_update_material_is_lenient_like_add():
    store = _store()
    ledger = MaterialLedger(store, clock=_clock)

    m = ledger.update_material(2, type="  ", color="", weight_kg=-3, unit_cost="abc")

    assert m.type == "Sin tipo"
    assert m.color == "Sin color"
    assert m.weight_on_hand == 0
    assert m.unit_cost == 0

    with pytest.raises(MaterialNotFound):
        ledger.update_material(99, weight_kg=1)


def test_delete_material_keeps_history_labelled_as_deleted():
    store = _store(consumption=[_event(1, 1, 100, "2026-05-10T10:00:00+00:00")])
    ledger = MaterialLedger(store, clock=_clock)

    ledger.delete_material(1)

    assert [m.id for m in store.materials()] == [2]
    assert [v.material_label for v in ledger.list_consumption()] == ["Material eliminado"]
    with pytest.raises(MaterialNotFound):
        ledger.delete_material(1)
