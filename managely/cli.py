"""Command line access to Managely reports and maintenance tasks."""

from __future__ import annotations

import argparse
import asyncio
import datetime
import json
import logging
import sys
from decimal import Decimal
from typing import Any, Awaitable, Callable

from managely import conflicts
from managely.context import ManagelyContext, build_context
from managely.google_credentials import CredentialsFileInvalidError
from managely.logging_config import configure_logging
from managely.repository import RepositoryError
from managely.settings import DEFAULT_SETTINGS_PATH, load_settings
from managely.sheets_client import StoreError, StoreUnauthorizedError


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "__dict__"):
        return vars(value)
    return str(value)


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=_json_default))


async def _init(context: ManagelyContext, args: argparse.Namespace) -> int:
    await context.ensure_sheets()
    print(f"Sheets ready in {context.store.spreadsheet_id}")
    return 0


async def _statement(context: ManagelyContext, args: argparse.Namespace) -> int:
    statement = await context.finance.statement(args.month, args.year)
    _print(statement.as_dict())
    return 0


async def _dashboard(context: ManagelyContext, args: argparse.Namespace) -> int:
    _print(await context.finance.dashboard(args.month, args.year))
    return 0


async def _monthly(context: ManagelyContext, args: argparse.Namespace) -> int:
    _print(await context.finance.monthly_revenue(args.year))
    return 0


async def _breakdown(context: ManagelyContext, args: argparse.Namespace) -> int:
    breakdown = await context.finance.revenue_breakdown(args.month, args.year)
    _print({**vars(breakdown), "total": breakdown.total})
    return 0


async def _top(context: ManagelyContext, args: argparse.Namespace) -> int:
    if args.kind == "services":
        ranked = await context.finance.top_services(args.month, args.year, args.limit)
    else:
        ranked = await context.finance.top_products(args.month, args.year, args.limit)
    _print(ranked)
    return 0


async def _payments(context: ManagelyContext, args: argparse.Namespace) -> int:
    _print(await context.finance.payment_breakdown(args.month, args.year))
    return 0


async def _search(context: ManagelyContext, args: argparse.Namespace) -> int:
    for client in await context.clients.search(args.term):
        print(f"{client.guid}  {client.full_name}  {client.phone}  {client.email}")
    return 0


async def _loyalty(context: ManagelyContext, args: argparse.Namespace) -> int:
    status = await context.loyalty.status(args.client_guid)
    spent = await context.visits.total_spent_by_client(args.client_guid)
    cards = [card for card in await context.gift_cards.by_client(args.client_guid) if card.usable_on(context.today())]
    _print({**vars(status), "total_spent": spent, "usable_cards": [vars(card) for card in cards]})
    return 0


async def _verify(context: ManagelyContext, args: argparse.Namespace) -> int:
    suspicious = await context.clients.verify_all() + await context.visits.verify_all()
    for entity in suspicious:
        print(f"Row {entity.row_index} ({entity.guid}) does not match its integrity hash")
    if not suspicious:
        print("All hashed rows match their content.")
    return 1 if suspicious else 0


async def _alerts(context: ManagelyContext, args: argparse.Namespace) -> int:
    for product in await context.products.in_alert():
        state = "out of stock" if product.out_of_stock else "low"
        print(f"{product.name} ({product.brand}): {product.stock} left, threshold {product.alert_threshold} [{state}]")
    return 0


def command_conflicts(args: argparse.Namespace) -> int:
    _print(conflicts.history(args.limit, args.source))
    return 0


def _run(handler: Callable[[ManagelyContext, argparse.Namespace], Awaitable[int]]) -> Callable[[argparse.Namespace], int]:
    def _command(args: argparse.Namespace) -> int:
        try:
            context = build_context(load_settings(args.settings))
            return asyncio.run(handler(context, args))
        except StoreUnauthorizedError as exc:
            print(f"Not authorised: {exc}", file=sys.stderr)
            return 2
        except (StoreError, RepositoryError, CredentialsFileInvalidError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    return _command


def _add_period(parser: argparse.ArgumentParser) -> None:
    today = datetime.date.today()
    parser.add_argument("--month", type=int, default=today.month, choices=range(1, 13), metavar="1-12")
    parser.add_argument("--year", type=int, default=today.year)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Managely salon management tool")
    parser.add_argument("--settings", default=DEFAULT_SETTINGS_PATH, help="Path to settings.json")
    parser.add_argument("--verbose", action="store_true", help="Log debug messages and echo them to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create missing sheets and header rows")
    init_parser.set_defaults(func=_run(_init))

    statement_parser = subparsers.add_parser("statement", help="Cash-basis statement for a month")
    _add_period(statement_parser)
    statement_parser.set_defaults(func=_run(_statement))

    dashboard_parser = subparsers.add_parser("dashboard", help="Headline counts and revenue")
    _add_period(dashboard_parser)
    dashboard_parser.set_defaults(func=_run(_dashboard))

    monthly_parser = subparsers.add_parser("monthly", help="Per-month revenue for a year")
    monthly_parser.add_argument("--year", type=int, default=datetime.date.today().year)
    monthly_parser.set_defaults(func=_run(_monthly))

    breakdown_parser = subparsers.add_parser("breakdown", help="Revenue split by source")
    _add_period(breakdown_parser)
    breakdown_parser.set_defaults(func=_run(_breakdown))

    top_parser = subparsers.add_parser("top", help="Best selling services or products")
    top_parser.add_argument("kind", choices=("services", "products"))
    top_parser.add_argument("--limit", type=int, default=10)
    _add_period(top_parser)
    top_parser.set_defaults(func=_run(_top))

    payments_parser = subparsers.add_parser("payments", help="Visit totals by payment mode")
    _add_period(payments_parser)
    payments_parser.set_defaults(func=_run(_payments))

    search_parser = subparsers.add_parser("search", help="Search clients")
    search_parser.add_argument("term")
    search_parser.set_defaults(func=_run(_search))

    loyalty_parser = subparsers.add_parser("loyalty", help="Loyalty status of a client")
    loyalty_parser.add_argument("client_guid")
    loyalty_parser.set_defaults(func=_run(_loyalty))

    verify_parser = subparsers.add_parser("verify", help="List rows edited outside the application")
    verify_parser.set_defaults(func=_run(_verify))

    alerts_parser = subparsers.add_parser("alerts", help="Products at or below their alert threshold")
    alerts_parser.set_defaults(func=_run(_alerts))

    conflicts_parser = subparsers.add_parser("conflicts", help="Show recent entries of the conflict journal")
    conflicts_parser.add_argument("--limit", type=int, default=10)
    conflicts_parser.add_argument("--source", choices=("update", "stock_movement"), help="Only entries of this kind")
    conflicts_parser.set_defaults(func=command_conflicts)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, console=args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
