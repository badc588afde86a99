import json
from decimal import Decimal

import pytest

from core_common import ConfigError, PersistenceError
from core_models import ShopConfig
from core_store import JsonDirStorage, MemoryStorage, ShopStore, load_pricing_json, resolve_pricing


def test_missing_and_corrupt_files_load_as_empty(tmp_path):
    (tmp_path / "orders.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "products.json").write_text('{"id": 1}', encoding="utf-8")
    store = ShopStore.open(str(tmp_path))

    assert store.load("materials") == []
    assert store.load("orders") == []
    assert store.load("products") == []


def test_unknown_collection_key_is_rejected():
    with pytest.raises(KeyError):
        ShopStore(MemoryStorage()).load("nope")


def test_corrupt_records_are_dropped_others_survive():
    store = ShopStore(MemoryStorage({
        "materials": [
            {"id": 1, "type": "PLA", "color": "Rojo", "weightOnHand": 1, "unitCost": 9000},
            {"type": "sin id"},
            "not a record",
            {"id": 3, "tipo": "ABS", "peso": -2, "costo": "abc"},
        ],
    }))

    materials = store.materials()

    assert [m.id for m in materials] == [1, 3]
    legacy = materials[1]
    assert legacy.type == "ABS"
    assert legacy.color == "Sin color"
    assert legacy.weight_on_hand == 0
    assert legacy.unit_cost == 0


def test_events_with_bad_timestamp_are_skipped():
    store = ShopStore(MemoryStorage({
        "consumption": [
            {"id": 1, "materialId": 1, "quantityGrams": 5, "reason": "x", "cost": 1, "timestamp": "ayer"},
            {"id": 2, "materialId": 1, "quantityGrams": 5, "reason": "x", "cost": 1,
             "timestamp": "2026-01-01T10:00:00"},
        ],
    }))

    assert [e.id for e in store.consumption()] == [2]


def test_json_dir_round_trip_is_atomic(tmp_path):
    storage = JsonDirStorage(str(tmp_path / "data"))

    assert storage.save("orders", [{"id": 1, "customer": "Ana"}])
    assert storage.load("orders") == [{"id": 1, "customer": "Ana"}]
    assert sorted(p.name for p in (tmp_path / "data").iterdir()) == ["orders.json"]


def test_save_or_raise_reports_collection():
    class ReadOnly(MemoryStorage):
        def save(self, key, records):
            return False

    store = ShopStore(ReadOnly())
    with pytest.raises(PersistenceError) as exc:
        store.save_or_raise("orders", [])
    assert exc.value.key == "orders"


def test_config_defaults_and_round_trip():
    store = ShopStore(MemoryStorage())
    cfg = store.config()

    assert cfg.business_name == "3D Control Center"
    assert cfg.tax_percent == Decimal(13)
    assert cfg.labor_rate_per_hour == Decimal(1000)

    cfg.business_name = "Taller"
    cfg.tax_percent = Decimal("10")
    assert store.save_config(cfg)

    again = store.config()
    assert again.business_name == "Taller"
    assert again.tax_percent == Decimal(10)
    assert again.currency_symbol == "₡"


def test_config_ignores_garbage_numbers():
    cfg = ShopConfig.from_dict({"taxPercent": "mucho", "defaultMarginPercent": 45, "phone": None})

    assert cfg.tax_percent == Decimal(13)
    assert cfg.default_margin_percent == Decimal(45)
    assert cfg.phone == ""


def test_load_pricing_json_merges_base_and_override(tmp_path):
    path = tmp_path / "pricing.json"
    path.write_text(json.dumps({"wattage": 200, "energy_cost_per_kwh": 95}), encoding="utf-8")

    out = load_pricing_json(str(path), base={"wattage": 120, "waste_percent": 5}, override={"energy_cost_per_kwh": 80})

    assert out == {"wattage": 200, "waste_percent": 5, "energy_cost_per_kwh": 80}


def test_load_pricing_json_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_pricing_json(str(tmp_path / "pricing.json"))


def test_resolve_pricing_without_file_uses_base(tmp_path):
    store = ShopStore.open(str(tmp_path))

    out = resolve_pricing(store, {"wattage": 120}, {"wattage": 150})

    assert out == {"wattage": 150}


@pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
def test_resolve_pricing_bad_file_is_config_error(tmp_path, content):
    (tmp_path / "pricing.json").write_text(content, encoding="utf-8")
    store = ShopStore.open(str(tmp_path))

    with pytest.raises(ConfigError):
        resolve_pricing(store, {"wattage": 120})
