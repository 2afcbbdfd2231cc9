"""Integration tests describing the end-to-end consignment workflows.

These scenarios run the business layer and the CLI against a real workbook on
disk, persisting and reloading between steps the way a user session would.
"""

from __future__ import annotations

from decimal import Decimal

import openpyxl
import pytest

from consignflow import cli, constants, core_logic, data_manager, setup_excel
from consignflow.units import NANOS_PER_DAY, parse_timestamp


def day(n: int) -> int:
    return n * NANOS_PER_DAY


def _register_alice_and_widget(context: core_logic.RuntimeContext) -> tuple[int, int]:
    """Add the sample rep and product through the business logic layer."""

    rep = core_logic.add_rep(context, rep_name="Alice")
    product = core_logic.add_product(context, product_name="Widget", price=1000)
    return rep.rep_id, product.product_id


def test_consignment_sale_return_flow(runtime_context):
    """Walk through consignment, sale, return, and reporting on one rep."""

    context = runtime_context
    rep_id, product_id = _register_alice_and_widget(context)

    # Persist and reload so later writes see the catalog as stored on disk.
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)

    core_logic.record_consignment(context, core_logic.ConsignmentCommand(rep_id, product_id, 10, date=day(1)))
    sale = core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 4, unit_price=1200, date=day(5)))
    core_logic.record_return(context, core_logic.ReturnCommand(rep_id, product_id, 1, date=day(6)))

    (balance,) = core_logic.calculate_rep_balances(context)
    assert balance.total_sales == 4800
    assert balance.total_returns == 1000
    assert balance.commission == Decimal("1140")
    assert balance.amount_owed == Decimal("1140")

    (item,) = core_logic.calculate_inventory(context)
    assert (item.rep_name, item.product_name, item.quantity) == ("Alice", "Widget", 5)

    core_logic.persist_context(context)
    reloaded = core_logic.refresh_context(context)

    assert core_logic.list_sales(reloaded) == [sale]
    (reloaded_balance,) = core_logic.calculate_rep_balances(reloaded)
    assert reloaded_balance == balance


def test_payout_and_override_flow(runtime_context):
    """A payout and a rep override should both feed into amount owed."""

    context = runtime_context
    rep_id, product_id = _register_alice_and_widget(context)

    core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 2, date=day(1)))
    core_logic.record_payout(context, core_logic.PayoutCommand(rep_id, 300, date=day(2), notes="advance"))
    core_logic.set_rep_override(context, rep_id, 50.0)

    (balance,) = core_logic.calculate_rep_balances(context)
    assert balance.total_sales == 2000
    assert balance.commission == Decimal("1000")
    assert balance.amount_owed == Decimal("700")

    # The override lives in the commission settings file, not the workbook.
    fresh = core_logic.load_runtime_context(context.settings.data_file.parent / "config.ini")
    assert core_logic.get_commission_settings(fresh).overrides_by_rep_id == {rep_id: 50.0}


def test_settlement_close_locks_transactions_but_not_adjustments(runtime_context):
    """Closing a period should lock its dates for sales while adjustments still land."""

    context = runtime_context
    rep_id, product_id = _register_alice_and_widget(context)
    core_logic.record_consignment(context, core_logic.ConsignmentCommand(rep_id, product_id, 10, date=day(1)))
    core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 1, date=day(2)))

    period = core_logic.open_settlement_period(context, day(0), day(10))
    closed = core_logic.close_settlement_period(context, period.period_id)

    assert closed.status is constants.SettlementStatus.CLOSED
    assert closed.closing_balances[rep_id].total_sales == 1000

    with pytest.raises(core_logic.LockedPeriodError) as excinfo:
        core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 1, date=day(5)))
    assert excinfo.value.period.period_id == period.period_id

    adjustment = core_logic.record_adjustment(
        context,
        core_logic.AdjustmentCommand(rep_id, -250, "Damaged unit credit", date=day(5)),
    )
    assert adjustment.date == day(5)

    core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 1, date=day(10) + 1))
    assert len(core_logic.list_sales(context)) == 2

    with pytest.raises(core_logic.AlreadyClosedError):
        core_logic.close_settlement_period(context, period.period_id)


def test_settlement_snapshots_survive_reload(runtime_context):
    """Stored period balances should rehydrate after a save and reload."""

    context = runtime_context
    rep_id, product_id = _register_alice_and_widget(context)
    core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 3, date=day(1)))
    core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 1, date=day(6)))

    period = core_logic.open_settlement_period(context, day(5), day(10))
    core_logic.close_settlement_period(context, period.period_id)
    core_logic.persist_context(context)

    reloaded = core_logic.refresh_context(context)
    stored = core_logic.get_settlement_period(reloaded, period.period_id)

    assert stored.is_closed
    assert stored.opening_balances[rep_id].total_sales == 3000
    assert stored.closing_balances[rep_id].total_sales == 4000
    assert stored.closing_balances[rep_id].amount_owed == Decimal("1200")
    assert core_logic.check_transaction_lock(reloaded, day(7)).locked
    assert not core_logic.check_transaction_lock(reloaded, day(4)).locked


def test_settlement_snapshot_keeps_exact_commission_after_reload(runtime_context):
    """A non-terminating commission should reload digit for digit."""

    context = runtime_context
    rep = core_logic.add_rep(context, rep_name="Alice")
    product = core_logic.add_product(context, product_name="Gizmo", price=123457)
    core_logic.set_default_commission(context, 33.333333333333336)
    core_logic.record_sale(context, core_logic.SaleCommand(rep.rep_id, product.product_id, 7, date=day(6)))

    period = core_logic.open_settlement_period(context, day(5), day(10))
    closed = core_logic.close_settlement_period(context, period.period_id)
    core_logic.persist_context(context)

    stored = core_logic.get_settlement_period(core_logic.refresh_context(context), period.period_id)

    captured = closed.closing_balances[rep.rep_id]
    assert captured.commission != captured.commission.to_integral_value()
    assert stored.closing_balances[rep.rep_id].commission == captured.commission
    assert stored.closing_balances[rep.rep_id].amount_owed == captured.amount_owed


def test_invalid_period_range_writes_nothing(runtime_context):
    """A rejected period should leave the settlement sheets empty."""

    with pytest.raises(core_logic.InvalidRangeError):
        core_logic.open_settlement_period(runtime_context, day(5), day(5))

    assert core_logic.list_settlement_periods(runtime_context) == []
    assert list(data_manager.iter_period_balances(runtime_context.workbook)) == []


def test_monthly_statement_flow(runtime_context):
    """The monthly statement should combine balance lines with adjustments."""

    context = runtime_context
    rep_id, product_id = _register_alice_and_widget(context)
    core_logic.record_sale(
        context,
        core_logic.SaleCommand(rep_id, product_id, 4, unit_price=1200, date=parse_timestamp("2025-01-05")),
    )
    core_logic.record_return(context, core_logic.ReturnCommand(rep_id, product_id, 1, date=parse_timestamp("2025-01-06")))
    core_logic.record_adjustment(
        context,
        core_logic.AdjustmentCommand(rep_id, 60, "Rounding", date=parse_timestamp("2025-01-31T23:00:00")),
    )
    core_logic.record_sale(context, core_logic.SaleCommand(rep_id, product_id, 1, date=parse_timestamp("2025-02-01")))

    statement = core_logic.build_statement(context, rep_id, 2025, 1)

    assert len(statement.sales) == 1
    assert statement.balance.amount_owed == Decimal("1140")
    assert statement.return_values == [1000]
    assert sum(statement.return_values) == statement.balance.total_returns
    assert statement.total_adjustments == 60
    assert statement.net_due == Decimal("1200")


def test_cli_session_persists_between_invocations(config_factory, tmp_path, capsys):
    """Each CLI call should save its writes for the next call to read."""

    bundle = config_factory()
    config = str(bundle.config_path)

    def run(*argv: str) -> int:
        return cli.main(["--config", config, *argv])

    assert run("add-rep", "--name", "Alice") == 0
    assert run("add-product", "--name", "Widget", "--price", "1000") == 0
    assert run("consign", "--rep-id", "0", "--product-id", "0", "--quantity", "10", "--date", "2025-01-01") == 0
    assert run("sale", "--rep-id", "0", "--product-id", "0", "--quantity", "4", "--unit-price", "1200", "--date", "2025-01-05") == 0
    assert run("return", "--rep-id", "0", "--product-id", "0", "--quantity", "1", "--date", "2025-01-06") == 0
    capsys.readouterr()

    assert run("balances") == 0
    output = capsys.readouterr().out
    assert "Alice" in output
    assert "$11.40" in output

    report = tmp_path / "inventory.csv"
    assert run("export", "--report", "inventory", "--output", str(report)) == 0
    assert report.read_text(encoding="utf-8") == "Rep,Product,Quantity\nAlice,Widget,5"

    assert run("open-period", "--start", "2025-01-01", "--end", "2025-01-31") == 0
    assert run("close-period", "--period-id", "0") == 0
    assert run("sale", "--rep-id", "0", "--product-id", "0", "--quantity", "1", "--date", "2025-01-31") == 2
    assert run("adjust", "--rep-id", "0", "--amount", "-100", "--notes", "Goodwill", "--date", "2025-01-31") == 0

    capsys.readouterr()
    assert run("check-lock", "--date", "2025-01-31T18:00:00") == 0
    assert capsys.readouterr().out.startswith("Locked:")

    workbook = openpyxl.load_workbook(bundle.workbook_path)
    assert workbook[constants.SheetName.SALES.value].max_row == 2
    assert workbook[constants.SheetName.ADJUSTMENTS.value].max_row == 2


def test_cli_unknown_rep_exits_with_business_error(config_file):
    """Referencing a missing rep should exit with code 2 and write nothing."""

    assert cli.main(["--config", str(config_file), "payout", "--rep-id", "7", "--amount", "100"]) == 2


def test_setup_script_creates_workbook_and_commission_file(tmp_path, capsys):
    """The setup script should build every sheet and seed commission settings."""

    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[System]\n"
        "DataFile = ledger.xlsx\n"
        "BusinessName = Test Consignments\n"
        f"SchemaVersion = {constants.EXPECTED_SCHEMA_VERSION}\n"
    )

    assert setup_excel.main(["--config", str(config_path)]) == 0

    workbook = openpyxl.load_workbook(tmp_path / "ledger.xlsx")
    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    settings_file = tmp_path / data_manager.DEFAULT_COMMISSION_FILE_NAME
    assert data_manager.load_commission_settings(settings_file).default_commission_percent == 30.0

    assert setup_excel.main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_excel.main(["--config", str(config_path), "--force"]) == 0
