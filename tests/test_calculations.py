"""Unit and property tests for the balance and inventory calculators."""

from __future__ import annotations

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from consignflow import calculations
from consignflow.calculations import RepBalance
from consignflow.commission import CommissionSettings
from consignflow.data_manager import ConsignmentRow, PayoutRow, ProductRow, RepRow, ReturnRow, SaleRow
from consignflow.units import NANOS_PER_DAY


def day(n: int) -> int:
    return n * NANOS_PER_DAY


ALICE = RepRow(0, "Alice")
BOB = RepRow(1, "Bob")
WIDGET = ProductRow(0, "Widget", 1000)
GADGET = ProductRow(1, "Gadget", 250)


def test_compute_balances_alice_widget_scenario():
    """Consign 10, sell 4 at 1200, return 1 should owe 1140 at 30%."""

    sales = [SaleRow(0, ALICE.rep_id, WIDGET.product_id, 4, 1200, day(5))]
    returns = [ReturnRow(0, ALICE.rep_id, WIDGET.product_id, 1, day(6))]

    (balance,) = calculations.compute_balances([ALICE], sales, returns, [], [WIDGET])

    assert balance.total_sales == 4800
    assert balance.total_returns == 1000
    assert balance.net_sales == 3800
    assert balance.commission == Decimal("1140")
    assert balance.amount_owed == Decimal("1140")


def test_compute_inventory_alice_widget_scenario():
    """The same scenario should leave five widgets with Alice."""

    consignments = [ConsignmentRow(0, ALICE.rep_id, WIDGET.product_id, 10, day(1))]
    sales = [SaleRow(0, ALICE.rep_id, WIDGET.product_id, 4, 1200, day(5))]
    returns = [ReturnRow(0, ALICE.rep_id, WIDGET.product_id, 1, day(6))]

    items = calculations.compute_inventory([ALICE], consignments, sales, returns, [WIDGET])

    assert items == [calculations.InventoryItem(0, "Alice", 0, "Widget", 5)]


def test_compute_balances_rep_without_records_is_all_zero():
    """A rep with no transactions should get an all-zero balance."""

    sales = [SaleRow(0, ALICE.rep_id, WIDGET.product_id, 1, 1000, day(1))]

    balances = calculations.compute_balances([ALICE, BOB], sales, [], [], [WIDGET])

    assert balances[1] == RepBalance(rep_id=1, rep_name="Bob")
    assert [balance.rep_id for balance in balances] == [0, 1]


def test_compute_balances_window_is_inclusive():
    """Records dated exactly on either bound should be counted."""

    sales = [
        SaleRow(0, ALICE.rep_id, WIDGET.product_id, 1, 100, day(1)),
        SaleRow(1, ALICE.rep_id, WIDGET.product_id, 1, 200, day(2)),
        SaleRow(2, ALICE.rep_id, WIDGET.product_id, 1, 400, day(3)),
        SaleRow(3, ALICE.rep_id, WIDGET.product_id, 1, 800, day(3) + 1),
    ]

    (balance,) = calculations.compute_balances([ALICE], sales, [], [], [WIDGET], start_date=day(1), end_date=day(3))

    assert balance.total_sales == 700


def test_compute_balances_uses_captured_sale_price_and_current_return_price():
    """Sales use their own unit price; returns use today's catalog price."""

    sales = [SaleRow(0, ALICE.rep_id, GADGET.product_id, 2, 999, day(1))]
    returns = [ReturnRow(0, ALICE.rep_id, GADGET.product_id, 2, day(2))]

    (balance,) = calculations.compute_balances([ALICE], sales, returns, [], [GADGET])

    assert balance.total_sales == 1998
    assert balance.total_returns == 500


def test_compute_balances_unknown_product_returns_value_zero():
    """A return referencing a missing product should be valued at zero."""

    returns = [ReturnRow(0, ALICE.rep_id, 42, 3, day(1))]

    (balance,) = calculations.compute_balances([ALICE], [], returns, [], [WIDGET])

    assert balance.total_returns == 0


def test_compute_balances_applies_override_and_allows_negative_owed():
    """Overrides should apply per rep and overpayment should go negative."""

    sales = [
        SaleRow(0, ALICE.rep_id, WIDGET.product_id, 1, 1000, day(1)),
        SaleRow(1, BOB.rep_id, WIDGET.product_id, 1, 1000, day(1)),
    ]
    payouts = [PayoutRow(0, BOB.rep_id, 500, day(2), "advance")]
    commission_settings = CommissionSettings(default_commission_percent=30.0, overrides_by_rep_id={1: 10.0})

    alice, bob = calculations.compute_balances([ALICE, BOB], sales, [], payouts, [WIDGET], commission_settings)

    assert alice.commission == Decimal("300")
    assert bob.commission == Decimal("100")
    assert bob.amount_owed == Decimal("-400")


def test_compute_balances_returns_exceeding_sales_give_negative_commission():
    """Commission should not be clamped when returns exceed sales."""

    returns = [ReturnRow(0, ALICE.rep_id, WIDGET.product_id, 1, day(1))]

    (balance,) = calculations.compute_balances([ALICE], [], returns, [], [WIDGET])

    assert balance.commission == Decimal("-300")


def test_compute_balances_fractional_commission_is_exact():
    """Commission on odd cents should keep the fractional part."""

    sales = [SaleRow(0, ALICE.rep_id, WIDGET.product_id, 1, 333, day(1))]
    commission_settings = CommissionSettings(default_commission_percent=12.5)

    (balance,) = calculations.compute_balances([ALICE], sales, [], [], [WIDGET], commission_settings)

    assert balance.commission == Decimal("41.625")


def test_compute_inventory_ignores_sale_without_consignment():
    """A sale for a pair never consigned should not create a negative entry."""

    sales = [SaleRow(0, BOB.rep_id, WIDGET.product_id, 2, 1000, day(1))]

    assert calculations.compute_inventory([ALICE, BOB], [], sales, [], [WIDGET]) == []


def test_compute_inventory_drops_zero_and_keeps_negative():
    """Fully sold pairs are dropped, oversold pairs stay visible."""

    consignments = [
        ConsignmentRow(0, ALICE.rep_id, WIDGET.product_id, 2, day(1)),
        ConsignmentRow(1, BOB.rep_id, GADGET.product_id, 1, day(1)),
    ]
    sales = [
        SaleRow(0, ALICE.rep_id, WIDGET.product_id, 2, 1000, day(2)),
        SaleRow(1, BOB.rep_id, GADGET.product_id, 3, 250, day(2)),
    ]

    items = calculations.compute_inventory([ALICE, BOB], consignments, sales, [], [WIDGET, GADGET])

    assert items == [calculations.InventoryItem(1, "Bob", 1, "Gadget", -2)]


def test_compute_inventory_unknown_names_render_unknown():
    """Dangling rep or product ids should be labelled Unknown."""

    consignments = [ConsignmentRow(0, 9, 9, 4, day(1))]

    (item,) = calculations.compute_inventory([], consignments, [], [], [])

    assert (item.rep_name, item.product_name, item.quantity) == ("Unknown", "Unknown", 4)


def test_compute_inventory_respects_window():
    """Only records inside the window should be reconciled."""

    consignments = [
        ConsignmentRow(0, ALICE.rep_id, WIDGET.product_id, 5, day(1)),
        ConsignmentRow(1, ALICE.rep_id, WIDGET.product_id, 7, day(10)),
    ]

    (item,) = calculations.compute_inventory([ALICE], consignments, [], [], [WIDGET], start_date=day(5))

    assert item.quantity == 7


def test_filter_records_by_rep_and_window():
    """filter_records should apply rep and inclusive date filters together."""

    payouts = [
        PayoutRow(0, 0, 10, day(1), ""),
        PayoutRow(1, 1, 20, day(1), ""),
        PayoutRow(2, 0, 30, day(4), ""),
    ]

    result = calculations.filter_records(payouts, rep_id=0, end_date=day(1))

    assert [payout.payout_id for payout in result] == [0]


_sale = st.builds(
    SaleRow,
    sale_id=st.integers(min_value=0, max_value=1000),
    rep_id=st.integers(min_value=0, max_value=2),
    product_id=st.integers(min_value=0, max_value=3),
    quantity=st.integers(min_value=1, max_value=50),
    unit_price=st.integers(min_value=0, max_value=100_000),
    date=st.integers(min_value=0, max_value=day(30)),
)
_return = st.builds(
    ReturnRow,
    return_id=st.integers(min_value=0, max_value=1000),
    rep_id=st.integers(min_value=0, max_value=2),
    product_id=st.integers(min_value=0, max_value=3),
    quantity=st.integers(min_value=1, max_value=50),
    date=st.integers(min_value=0, max_value=day(30)),
)
_payout = st.builds(
    PayoutRow,
    payout_id=st.integers(min_value=0, max_value=1000),
    rep_id=st.integers(min_value=0, max_value=2),
    amount=st.integers(min_value=0, max_value=1_000_000),
    date=st.integers(min_value=0, max_value=day(30)),
    notes=st.just(""),
)


@settings(max_examples=100, deadline=None)
@given(
    sales=st.lists(_sale, max_size=20),
    returns=st.lists(_return, max_size=20),
    payouts=st.lists(_payout, max_size=10),
    default_rate=st.integers(min_value=0, max_value=100),
    override=st.one_of(st.none(), st.integers(min_value=0, max_value=100)),
)
def test_compute_balances_arithmetic_holds_for_random_ledgers(sales, returns, payouts, default_rate, override):
    """commission and amount owed should follow the formulas exactly."""

    reps = [RepRow(0, "A"), RepRow(1, "B"), RepRow(2, "C")]
    products = [ProductRow(0, "P0", 100), ProductRow(1, "P1", 250), ProductRow(2, "P2", 999)]
    overrides = {} if override is None else {1: float(override)}
    commission_settings = CommissionSettings(float(default_rate), overrides)

    balances = calculations.compute_balances(reps, sales, returns, payouts, products, commission_settings)

    assert [balance.rep_id for balance in balances] == [0, 1, 2]
    for balance in balances:
        rate = override if balance.rep_id == 1 and override is not None else default_rate
        assert balance.commission * 100 == (balance.total_sales - balance.total_returns) * rate
        assert balance.amount_owed == balance.commission - balance.total_payouts
        assert balance.total_payouts == sum(p.amount for p in payouts if p.rep_id == balance.rep_id)
