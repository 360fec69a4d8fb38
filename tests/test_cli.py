"""
tests/test_cli.py - End-to-end tests of the posinv command line
"""
import json
import logging

import pytest
from typer.testing import CliRunner

from posinventory.main import app
from posinventory.payments.callbacks import vnpay_secure_hash

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Invoke the CLI against a temp database with no user config file."""
    for name in ("DEBUG", "POSINV_DEBUG", "POSINV_LOGLEVEL"):
        monkeypatch.delenv(name, raising=False)
    env = {
        "POSINV_DATABASE_PATH": str(tmp_path / "cli.db"),
        "POSINV_LOG_LEVEL": "warning",
        "POSINV_PAYMENTS__VNPAY_SECRET": "cli-secret",
    }
    config_file = tmp_path / "absent.toml"

    def invoke(*args):
        return runner.invoke(app, ["--config", str(config_file), *args], env=env)

    return invoke


@pytest.fixture
def product_id(cli):
    result = cli("product", "add", "--name", "Bánh mì", "--sku", "bm-01", "--price", "20000",
                 "--stock", "10", "--reorder-level", "3", "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)["id"]


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "POS Inventory" in result.stdout


def test_init_db(cli, tmp_path):
    result = cli("init-db")

    assert result.exit_code == 0, result.output
    assert "Database ready" in result.stdout
    assert (tmp_path / "cli.db").exists()


def test_product_add_and_list(cli, product_id):
    result = cli("product", "list", "--json")

    assert result.exit_code == 0, result.output
    [product] = json.loads(result.stdout)
    assert product["id"] == product_id
    assert product["sku"] == "BM-01"
    assert product["stock_quantity"] == 10


def test_product_add_invalid_sku(cli):
    result = cli("product", "add", "--name", "Trà đá", "--sku", "bad sku!")

    assert result.exit_code == 1
    assert "Invalid sku" in result.output


def test_duplicate_sku_reported(cli, product_id):
    result = cli("product", "add", "--name", "Other", "--sku", "BM-01")

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_stock_adjust_and_show(cli, product_id):
    result = cli("stock", "adjust", product_id, "-4", "--type", "sale", "--reason", "Walk-in", "--json")

    assert result.exit_code == 0, result.output
    adjustment = json.loads(result.stdout)
    assert adjustment["new_quantity"] == 6
    assert adjustment["new_version"] == 2

    shown = json.loads(cli("stock", "show", product_id, "--json").stdout)
    assert shown["stock_quantity"] == 6
    assert shown["available_quantity"] == 6


def test_stock_adjust_insufficient(cli, product_id):
    result = cli("stock", "adjust", product_id, "-11")

    assert result.exit_code == 1
    assert "Insufficient inventory" in result.output


def test_stock_show_unknown_product(cli):
    result = cli("stock", "show", "nope")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_movements_and_alerts(cli, product_id):
    cli("stock", "adjust", product_id, "-8", "--reason", "Spoiled")

    movements = json.loads(cli("stock", "movements", product_id, "--json").stdout)
    assert [m["quantity"] for m in movements] == [-8]
    assert movements[0]["reason"] == "Spoiled"

    alerts = json.loads(cli("stock", "alerts", "--json").stdout)
    assert [a["product_id"] for a in alerts] == [product_id]


def test_reservation_flow(cli, product_id):
    created = cli("reserve", "create", product_id, "3", "--order", "ORD-1", "--json")
    assert created.exit_code == 0, created.output
    reservation_id = json.loads(created.stdout)["id"]

    shown = json.loads(cli("stock", "show", product_id, "--json").stdout)
    assert shown["reserved_quantity"] == 3

    confirmed = cli("reserve", "confirm", reservation_id, "--json")
    assert confirmed.exit_code == 0, confirmed.output
    assert json.loads(confirmed.stdout)["status"] == "confirmed"

    released = cli("reserve", "release", reservation_id)
    assert released.exit_code == 1
    assert "not active" in released.output

    cleanup = cli("reserve", "cleanup")
    assert cleanup.exit_code == 0
    assert "No expired reservations" in cleanup.stdout


def test_payments_verify(cli, tmp_path):
    params = {"vnp_Amount": "2000000", "vnp_ResponseCode": "00", "vnp_TransactionStatus": "00",
              "vnp_TxnRef": "ORD-5", "vnp_TransactionNo": "777"}
    params["vnp_SecureHash"] = vnpay_secure_hash(params, "cli-secret")
    payload = tmp_path / "callback.json"
    payload.write_text(json.dumps(params), encoding="utf-8")

    result = cli("payments", "verify", "vnpay", str(payload), "--json")

    assert result.exit_code == 0, result.output
    callback = json.loads(result.stdout)
    assert callback["order_id"] == "ORD-5"
    assert callback["amount"] == 20000
    assert callback["success"] is True


def test_payments_verify_bad_signature(cli, tmp_path):
    payload = tmp_path / "callback.json"
    payload.write_text(json.dumps({"vnp_TxnRef": "ORD-5", "vnp_SecureHash": "deadbeef"}), encoding="utf-8")

    result = cli("payments", "verify", "vnpay", str(payload))

    assert result.exit_code == 1
    assert "Invalid vnpay callback signature" in result.output


def test_invalid_config_override(cli):
    result = cli("--set", "queue.max_retries=0", "init-db")

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
