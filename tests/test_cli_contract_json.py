from __future__ import annotations

import json
import math

import pytest

import cli_shop as cli
from tests.helpers_cli import run_cli, run_cli_json


def _assert_contract(payload: dict, command: str) -> None:
    assert set(payload) == {"success", "command", "result", "errors"}
    assert payload["command"] == command
    assert isinstance(payload["success"], bool), "'success' should be a boolean"
    assert isinstance(payload["errors"], list), "'errors' should be a list"


@pytest.fixture()
def data_dir(tmp_path):
    d = tmp_path / "shop"
    rc, payload, stderr = run_cli_json(
        ["materials", "add", "--type", "PLA", "--color", "Negro", "--kg", "1", "--cost", "9000"], d
    )
    assert rc == 0, f"materials add failed. stderr:\n{stderr}"
    return d


def test_calc_json_contract(data_dir):
    rc, payload, stderr = run_cli_json(
        ["calc", "--material", "1", "--weight", "50", "--pieces", "2", "--waste", "10", "--hours", "3",
         "--margin", "30", "--prep-rate", "0", "--post-rate", "0"],
        data_dir,
    )

    assert rc == 0, f"CLI failed with return code {rc}. stderr:\n{stderr}"
    _assert_contract(payload, "calc")
    assert payload["success"] is True
    bd = payload["result"]["breakdown"]
    for key, value in bd.items():
        if isinstance(value, float):
            assert math.isfinite(value) and value >= 0, f"{key} should be finite and >= 0"
    assert bd["material_cost"] == pytest.approx(990.0)
    assert bd["final_price"] == pytest.approx(1776.60, abs=0.01)
    assert payload["result"]["product"] is None
    assert "[cli] using data dir:" in stderr
    assert not (data_dir / "consumption.json").exists()


def test_calc_missing_fields_is_validation_error(data_dir):
    rc, payload, _ = run_cli_json(["calc", "--material", "1"], data_dir)

    assert rc == 1
    _assert_contract(payload, "calc")
    assert payload["success"] is False
    err = payload["errors"][0]
    assert err["type"] == "ValidationError"
    assert set(err["fields"]) == {"weight_per_piece_grams", "print_hours"}


def test_calc_unknown_material(data_dir):
    rc, payload, _ = run_cli_json(["calc", "--material", "7", "--weight", "1", "--hours", "1"], data_dir)

    assert rc == 1
    assert payload["errors"][0]["type"] == "MaterialNotFound"
    assert payload["errors"][0]["material_id"] == 7


def test_calc_save_product_and_order(data_dir):
    rc, payload, stderr = run_cli_json(
        ["calc", "--material", "1", "--weight", "20", "--hours", "1", "--save-product", "--save-order", "Ana"],
        data_dir,
    )

    assert rc == 0, stderr
    assert payload["result"]["product"]["name"] == "Pieza PLA - Negro"
    assert payload["result"]["order"]["status"] == "Pending"
    assert json.loads((data_dir / "products.json").read_text(encoding="utf-8"))[0]["stock"] == 1


def test_consume_then_history_and_summary(data_dir):
    rc, payload, stderr = run_cli_json(["consume", "--material", "1", "--grams", "250", "--reason", "Prueba"], data_dir)
    assert rc == 0, stderr
    assert payload["result"]["cost"] == pytest.approx(2250.0)

    rc, payload, _ = run_cli_json(["history", "--material", "1", "--days", "7"], data_dir)
    assert rc == 0
    assert [r["material"] for r in payload["result"]] == ["PLA - Negro"]

    rc, payload, _ = run_cli_json(["summary"], data_dir)
    assert rc == 0
    assert payload["result"]["event_count"] == 1
    assert payload["result"]["total_kg"] == pytest.approx(0.25)

    rc, payload, _ = run_cli_json(["materials"], data_dir)
    assert payload["result"][0]["weightOnHand"] == pytest.approx(0.75)
    assert payload["result"][0]["status"] == "High"


def test_consume_more_than_stock(data_dir):
    rc, payload, _ = run_cli_json(["consume", "--material", "1", "--grams", "1001", "--reason", "Prueba"], data_dir)

    assert rc == 1
    err = payload["errors"][0]
    assert err["type"] == "InsufficientStock"
    assert err["available_kg"] == pytest.approx(1.0)
    assert err["requested_kg"] == pytest.approx(1.001)


def test_order_with_auto_consumption(data_dir):
    rc, payload, stderr = run_cli_json(
        ["order", "add", "--customer", "Ana", "--material", "1", "--weight", "120", "--price", "9000",
         "--status", "Printing", "--yes"],
        data_dir,
    )

    assert rc == 0, stderr
    assert payload["result"]["consumption"]["orderId"] == payload["result"]["order"]["id"]

    rc, payload, _ = run_cli_json(["order", "add", "--customer", "Luis", "--material", "1", "--weight", "5000",
                                   "--status", "Printing", "--yes"], data_dir)
    assert rc == 0
    assert payload["result"]["consumption"] is None
    assert "must be recorded manually" in payload["result"]["warning"]


def test_invoice_and_dashboard(data_dir):
    run_cli_json(["order", "add", "--customer", "Ana", "--price", "1000", "--no"], data_dir)

    rc, payload, _ = run_cli_json(["invoice", "--order", "1"], data_dir)
    assert rc == 0
    assert payload["result"]["number"] == 1
    assert payload["result"]["total"] == pytest.approx(1130.0)

    rc, payload, _ = run_cli_json(["dashboard"], data_dir)
    assert rc == 0
    assert payload["result"]["active_orders"] == 1


def test_config_set_and_bad_key(data_dir):
    rc, payload, _ = run_cli_json(["config", "set", "taxPercent=10", "businessName=Taller"], data_dir)
    assert rc == 0
    assert payload["result"]["taxPercent"] == 10.0

    rc, payload, _ = run_cli_json(["config", "set", "colour=red"], data_dir)
    assert rc == 2
    assert payload["errors"][0]["type"] == "ConfigError"


def test_bad_pricing_json_is_config_error(data_dir):
    (data_dir / "pricing.json").write_text("{oops", encoding="utf-8")

    rc, payload, _ = run_cli_json(["summary"], data_dir)

    assert rc == 2
    assert payload["errors"][0]["type"] == "ConfigError"


def test_set_override_reaches_calculator(data_dir):
    rc, payload, _ = run_cli_json(
        ["calc", "--material", "1", "--weight", "10", "--hours", "2", "--set", "wattage=500"], data_dir
    )

    assert rc == 0
    assert payload["result"]["breakdown"]["energy_kwh"] == pytest.approx(1.0)

    rc, payload, _ = run_cli_json(["summary", "--set", "nonsense=1"], data_dir)
    assert rc == 2


def test_text_output_for_calc(data_dir):
    completed = run_cli(["calc", "--material", "1", "--weight", "50", "--hours", "3", "--data-dir", str(data_dir)])

    assert completed.returncode == 0, completed.stderr
    assert "TOTAL:" in completed.stdout
    assert "PLA - Negro" in completed.stdout


def test_parse_kv_override_types():
    out = cli.parse_kv_override(["wattage=200", "energy_cost_per_kwh=95.5", "include_tax=false", "name=x"])

    assert out == {"wattage": 200, "energy_cost_per_kwh": 95.5, "include_tax": False, "name": "x"}
    with pytest.raises(ValueError):
        cli.parse_kv_override(["broken"])


def test_finalize_json_payload_with_errors():
    payload = {"success": True, "command": "calc", "result": None}
    errors = [{"type": "ValidationError", "error": "boom"}]

    out = cli.finalize_json_payload(payload, errors)

    assert out["success"] is False
    assert out["errors"][0]["error"] == "boom"


def test_parse_kv_override_keeps_dotted_keys_flat(data_dir):
    assert cli.parse_kv_override(["a.b=1"]) == {"a.b": 1}

    rc, payload, _ = run_cli_json(["summary", "--set", "wattage.max=1"], data_dir)
    assert rc == 2
    assert "wattage.max" in payload["errors"][0]["error"]


def test_materials_edit_restocks_and_delete(data_dir):
    run_cli_json(["consume", "--material", "1", "--grams", "900", "--reason", "Prueba"], data_dir)

    rc, payload, stderr = run_cli_json(["materials", "edit", "--id", "1", "--kg", "2"], data_dir)
    assert rc == 0, stderr
    assert payload["result"]["weightOnHand"] == pytest.approx(2.0)
    assert payload["result"]["unitCost"] == pytest.approx(9000.0)

    rc, payload, _ = run_cli_json(["materials", "edit", "--kg", "2"], data_dir)
    assert rc == 1
    assert payload["errors"][0]["fields"] == ["id"]

    rc, payload, _ = run_cli_json(["materials", "delete", "--id", "1"], data_dir)
    assert rc == 0
    rc, payload, _ = run_cli_json(["history"], data_dir)
    assert [r["material"] for r in payload["result"]] == ["Material eliminado"]


def test_product_commands(data_dir):
    rc, payload, stderr = run_cli_json(
        ["product", "add", "--name", "Llavero", "--price", "500", "--stock", "10"], data_dir
    )
    assert rc == 0, stderr
    assert payload["result"]["id"] == 1

    rc, payload, _ = run_cli_json(["product", "edit", "--id", "1", "--stock", "7"], data_dir)
    assert rc == 0
    assert payload["result"]["stock"] == 7
    assert payload["result"]["price"] == pytest.approx(500.0)

    rc, payload, _ = run_cli_json(["product", "delete", "--id", "1"], data_dir)
    assert rc == 0
    rc, payload, _ = run_cli_json(["product"], data_dir)
    assert payload["result"] == []


def test_order_edit_and_delete(data_dir):
    run_cli_json(["order", "add", "--customer", "Ana", "--price", "1000", "--no"], data_dir)

    rc, payload, stderr = run_cli_json(["order", "edit", "--id", "1", "--price", "1500", "--status", "Ready"], data_dir)
    assert rc == 0, stderr
    assert payload["result"]["price"] == pytest.approx(1500.0)
    assert payload["result"]["status"] == "Ready"
    assert payload["result"]["customer"] == "Ana"

    rc, payload, _ = run_cli_json(["order", "delete", "--id", "1"], data_dir)
    assert rc == 0
    rc, payload, _ = run_cli_json(["order", "list"], data_dir)
    assert payload["result"] == []


def test_customer_supplier_and_quote_flow(data_dir):
    rc, _, stderr = run_cli_json(["customer", "add", "--name", "Ana", "--phone", "8888-0000"], data_dir)
    assert rc == 0, stderr
    rc, payload, _ = run_cli_json(["supplier", "add", "--name", "Filamentos CR"], data_dir)
    assert payload["result"]["id"] == 1

    rc, payload, _ = run_cli_json(["supplier", "purchase", "--supplier", "1", "--cost", "27000",
                                   "--description", "PLA"], data_dir)
    assert rc == 0
    rc, payload, _ = run_cli_json(["supplier"], data_dir)
    assert payload["result"][0]["purchases"] == 1
    assert payload["result"][0]["totalSpent"] == pytest.approx(27000.0)

    rc, payload, _ = run_cli_json(["quote", "add", "--customer", "Ana", "--item", "Llavero:4:500"], data_dir)
    assert rc == 0
    assert payload["result"]["number"] == "COT-0001"
    assert payload["result"]["total"] == pytest.approx(2000.0)

    rc, payload, _ = run_cli_json(["quote", "convert", "--id", "1"], data_dir)
    assert rc == 0
    assert payload["result"]["order"]["status"] == "Pending"

    rc, payload, _ = run_cli_json(["invoice", "--order", "1"], data_dir)
    assert rc == 0
    rc, payload, _ = run_cli_json(["customer"], data_dir)
    assert payload["result"][0]["orders"] == 1
    assert payload["result"][0]["totalSpent"] == pytest.approx(2260.0)


def test_purchase_without_cost_is_validation_error(data_dir):
    rc, payload, _ = run_cli_json(["supplier", "purchase", "--supplier", "1"], data_dir)

    assert rc == 1
    assert payload["errors"][0]["fields"] == ["cost"]
