"""Command-line entry points for the consignment ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing report output. Dates are accepted as ISO 8601 dates or
datetimes in UTC and money as integer minor units (cents).
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, export, log
from .constants import SettlementStatus
from .units import format_currency, format_percent, format_timestamp, parse_end_timestamp, parse_timestamp


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``persist`` is ``False`` for read-only commands so the workbook is not
    rewritten after a report.
    """

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    persist: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="consignflow",
        description="Command-line tools for the consignment ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini upward from here).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and period closes."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "add-rep": register_add_rep_command(subparsers),
        "consign": register_consign_command(subparsers),
        "sale": register_sale_command(subparsers),
        "return": register_return_command(subparsers),
        "payout": register_payout_command(subparsers),
        "adjust": register_adjust_command(subparsers),
        "open-period": register_open_period_command(subparsers),
        "close-period": register_close_period_command(subparsers),
        "set-commission": register_set_commission_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "balances": register_balances_command(subparsers),
        "inventory": register_inventory_command(subparsers),
        "periods": register_periods_command(subparsers),
        "statement": register_statement_command(subparsers),
        "check-lock": register_check_lock_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_window_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", default=None, help="Inclusive ISO start date.")
    parser.add_argument("--end", default=None, help="Inclusive ISO end date; a bare date covers the whole day.")


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the Products sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--price", required=True, help="Catalog price in cents.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_add_rep_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-rep``."""
    name = "add-rep"
    help_text = "Register a new sales rep in the Reps sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_rep)


def register_consign_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``consign``."""
    name = "consign"
    help_text = "Record stock handed to a rep."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--rep-id", required=True)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--date", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_consign)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale made by a rep."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--rep-id", required=True)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--unit-price", default=None, help="Defaults to the catalog price.")
        parser.add_argument("--date", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_return_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``return``."""
    name = "return"
    help_text = "Record goods a rep handed back."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--rep-id", required=True)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--date", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_return)


def register_payout_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``payout``."""
    name = "payout"
    help_text = "Record cash paid to a rep."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--rep-id", required=True)
        parser.add_argument("--amount", required=True, help="Amount in cents.")
        parser.add_argument("--date", default=None)
        parser.add_argument("--notes", dest="notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_payout)


def register_adjust_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust``."""
    name = "adjust"
    help_text = "Record a signed balance adjustment (allowed in closed periods)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--rep-id", required=True)
        parser.add_argument("--amount", required=True, help="Signed amount in cents.")
        parser.add_argument("--notes", required=True, help="Reason for the adjustment.")
        parser.add_argument("--date", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_adjust)


def register_open_period_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``open-period``."""
    name = "open-period"
    help_text = "Open a settlement period and snapshot opening balances."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--start", required=True)
        parser.add_argument("--end", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_open_period)


def register_close_period_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-period``."""
    name = "close-period"
    help_text = "Close a settlement period and snapshot closing balances."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--period-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_period)


def register_set_commission_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``set-commission``."""
    name = "set-commission"
    help_text = "Set the default commission or a per-rep override."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--percent", default=None)
        parser.add_argument("--rep-id", default=None, help="Target a single rep instead of the default.")
        parser.add_argument("--clear", action="store_true", help="Remove the rep override.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_set_commission)


def register_balances_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balances``."""
    name = "balances"
    help_text = "Display rep balances."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_window_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balances_report, persist=False)


def register_inventory_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``inventory``."""
    name = "inventory"
    help_text = "Display stock held by each rep."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_window_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_inventory_report, persist=False)


def register_periods_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``periods``."""
    name = "periods"
    help_text = "List settlement periods."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--status",
            choices=[member.value for member in SettlementStatus],
            default=None,
        )
        parser.add_argument("--rep-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_periods_report, persist=False)


def register_statement_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``statement``."""
    name = "statement"
    help_text = "Display a rep's monthly statement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--rep-id", required=True)
        parser.add_argument("--year", required=True)
        parser.add_argument("--month", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_statement_report, persist=False)


def register_check_lock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``check-lock``."""
    name = "check-lock"
    help_text = "Report whether a date falls inside a closed settlement period."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_check_lock, persist=False)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export balances or inventory to a CSV file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--report", choices=["balances", "inventory"], required=True)
        parser.add_argument("--output", type=Path, required=True)
        _add_window_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export, persist=False)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def _optional_date(raw: Optional[str]) -> Optional[int]:
    return parse_timestamp(raw) if raw is not None else None


def _optional_end_date(raw: Optional[str]) -> Optional[int]:
    return parse_end_timestamp(raw) if raw is not None else None


def _optional_int(raw: Optional[str]) -> Optional[int]:
    return int(raw) if raw is not None else None


def translate_window(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate ``--start``/``--end`` into calculator keyword arguments."""
    return {
        "start_date": _optional_date(getattr(args, "start", None)),
        "end_date": _optional_end_date(getattr(args, "end", None)),
    }


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "product_name": args.name,
        "price": int(args.price),
    }


def translate_add_rep(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-rep request."""
    return {"rep_name": args.name}


def translate_consign(args: argparse.Namespace) -> core_logic.ConsignmentCommand:
    """Translate CLI args into a consignment command object."""
    return core_logic.ConsignmentCommand(
        rep_id=int(args.rep_id),
        product_id=int(args.product_id),
        quantity=int(args.quantity),
        date=_optional_date(args.date),
    )


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        rep_id=int(args.rep_id),
        product_id=int(args.product_id),
        quantity=int(args.quantity),
        unit_price=_optional_int(args.unit_price),
        date=_optional_date(args.date),
    )


def translate_return(args: argparse.Namespace) -> core_logic.ReturnCommand:
    """Translate CLI args into a return command object."""
    return core_logic.ReturnCommand(
        rep_id=int(args.rep_id),
        product_id=int(args.product_id),
        quantity=int(args.quantity),
        date=_optional_date(args.date),
    )


def translate_payout(args: argparse.Namespace) -> core_logic.PayoutCommand:
    """Translate CLI args into a payout command object."""
    return core_logic.PayoutCommand(
        rep_id=int(args.rep_id),
        amount=int(args.amount),
        date=_optional_date(args.date),
        notes=args.notes or "",
    )


def translate_adjust(args: argparse.Namespace) -> core_logic.AdjustmentCommand:
    """Translate CLI args into an adjustment command object."""
    return core_logic.AdjustmentCommand(
        rep_id=int(args.rep_id),
        amount=int(args.amount),
        notes=args.notes,
        date=_optional_date(args.date),
    )


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    payload = translate_add_product(args)
    record = core_logic.add_product(context, **payload)
    print(f"Added product #{record.product_id}: {record.product_name} ({format_currency(record.price)})")
    return 0


def run_add_rep(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-rep workflow in the BLL."""
    payload = translate_add_rep(args)
    record = core_logic.add_rep(context, **payload)
    print(f"Added rep #{record.rep_id}: {record.rep_name}")
    return 0


def run_consign(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the consignment workflow via the BLL."""
    command = translate_consign(args)
    core_logic.record_consignment(context, command)
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    command = translate_sale(args)
    core_logic.record_sale(context, command)
    return 0


def run_return(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the return workflow via the BLL."""
    command = translate_return(args)
    core_logic.record_return(context, command)
    return 0


def run_payout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the payout workflow via the BLL."""
    command = translate_payout(args)
    core_logic.record_payout(context, command)
    return 0


def run_adjust(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the adjustment workflow via the BLL."""
    command = translate_adjust(args)
    core_logic.record_adjustment(context, command)
    return 0


def run_open_period(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Open a settlement period via the BLL."""
    period = core_logic.open_settlement_period(
        context,
        parse_timestamp(args.start),
        parse_end_timestamp(args.end),
    )
    print(f"Opened settlement period #{period.period_id}")
    return 0


def run_close_period(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Close a settlement period via the BLL."""
    period = core_logic.close_settlement_period(context, int(args.period_id))
    print(f"Closed settlement period #{period.period_id}")
    return 0


def run_set_commission(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Update the default commission or a rep override.

    Raises:
        ValueError: If neither ``--percent`` nor ``--clear`` is given, or
            ``--clear`` is used without ``--rep-id``.
    """
    if args.clear:
        if args.rep_id is None:
            raise ValueError("--clear requires --rep-id")
        core_logic.set_rep_override(context, int(args.rep_id), None)
        return 0
    if args.percent is None:
        raise ValueError("--percent is required unless --clear is given")
    percent = float(args.percent)
    if args.rep_id is None:
        core_logic.set_default_commission(context, percent)
    else:
        core_logic.set_rep_override(context, int(args.rep_id), percent)
    return 0


def _print_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
    cells = [[str(value) for value in row] for row in rows]
    widths = [len(header) for header in headers]
    for row in cells:
        for index, value in enumerate(row):
            widths[index] = max(widths[index], len(value))
    print("  ".join(header.ljust(widths[index]) for index, header in enumerate(headers)))
    for row in cells:
        print("  ".join(value.ljust(widths[index]) for index, value in enumerate(row)))


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the balance reporting workflow."""
    balances = core_logic.calculate_rep_balances(context, **translate_window(args))
    _print_table(export.BALANCE_HEADERS, export.balances_to_rows(balances))
    return 0


def run_inventory_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the inventory reporting workflow."""
    items = core_logic.calculate_inventory(context, **translate_window(args))
    _print_table(export.INVENTORY_HEADERS, export.inventory_to_rows(items))
    return 0


def run_periods_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """List settlement periods."""
    status = SettlementStatus(args.status) if args.status is not None else None
    periods = core_logic.list_settlement_periods(
        context,
        status=status,
        rep_id=_optional_int(args.rep_id),
    )
    _print_table(
        ["Period", "Start", "End", "Status"],
        [
            [
                period.period_id,
                format_timestamp(period.start_date),
                format_timestamp(period.end_date),
                period.status.value,
            ]
            for period in periods
        ],
    )
    return 0


def run_statement_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print a monthly statement for one rep."""
    statement = core_logic.build_statement(context, int(args.rep_id), int(args.year), int(args.month))
    balance = statement.balance
    print(f"{context.settings.business_name}")
    print(
        f"Statement for {statement.rep.rep_name} "
        f"({format_timestamp(statement.start_date)} - {format_timestamp(statement.end_date)})"
    )
    print(f"Commission rate: {format_percent(statement.commission_rate)}")
    print()
    _print_table(
        ["Line", "Date", "Amount", "Notes"],
        [
            *[["Sale", format_timestamp(sale.date), format_currency(sale.unit_price * sale.quantity), ""] for sale in statement.sales],
            *[
                ["Return", format_timestamp(item.date), format_currency(value), f"{item.quantity} unit(s)"]
                for item, value in zip(statement.returns, statement.return_values)
            ],
            *[["Payout", format_timestamp(payout.date), format_currency(payout.amount), payout.notes] for payout in statement.payouts],
            *[["Adjustment", format_timestamp(adj.date), format_currency(adj.amount), adj.notes] for adj in statement.adjustments],
        ],
    )
    print()
    print(f"Total sales:     {format_currency(balance.total_sales)}")
    print(f"Total returns:   {format_currency(balance.total_returns)}")
    print(f"Net sales:       {format_currency(balance.net_sales)}")
    print(f"Commission:      {format_currency(balance.commission)}")
    print(f"Payouts:         {format_currency(balance.total_payouts)}")
    print(f"Amount owed:     {format_currency(balance.amount_owed)}")
    print(f"Adjustments:     {format_currency(statement.total_adjustments)}")
    print(f"Net due:         {format_currency(statement.net_due)}")
    return 0


def run_check_lock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print whether a transaction date is locked."""
    result = core_logic.check_transaction_lock(context, parse_timestamp(args.date))
    if result.locked:
        print(f"Locked: {result.reason}")
    else:
        print("Unlocked")
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Write a balances or inventory report to CSV."""
    window = translate_window(args)
    if args.report == "balances":
        headers = export.BALANCE_HEADERS
        rows = export.balances_to_rows(core_logic.calculate_rep_balances(context, **window))
    else:
        headers = export.INVENTORY_HEADERS
        rows = export.inventory_to_rows(core_logic.calculate_inventory(context, **window))
    destination = export.write_csv(args.output, headers, rows)
    print(f"Wrote {len(rows)} row(s) to {destination}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].persist:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":
    raise SystemExit(main())
