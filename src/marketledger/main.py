from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from marketledger.application.container import AppContainer, build_container
from marketledger.config import get_app_paths
from marketledger.domain.errors import AppError, ValidationError
from marketledger.domain.models import ReportFilter
from marketledger.logging_config import setup_logging

log = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {value}") from e


def _cart_entry(value: str) -> tuple[str, int]:
    product_id, sep, qty = value.partition("=")
    if not sep or not product_id:
        raise argparse.ArgumentTypeError(f"expected PRODUCT_ID=QTY, got: {value}")
    try:
        return product_id, int(qty)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"quantity must be an integer: {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketledger", description="Market sales ledger")
    parser.add_argument("--db", type=Path, default=None, help="ledger database file")
    sub = parser.add_subparsers(dest="command", required=True)

    products = sub.add_parser("products", help="manage the product catalog")
    psub = products.add_subparsers(dest="action", required=True)
    psub.add_parser("list")
    p_add = psub.add_parser("add")
    p_add.add_argument("name")
    p_add.add_argument("price", type=float)
    p_add.add_argument("cost", type=float)
    p_rm = psub.add_parser("remove")
    p_rm.add_argument("product_id")

    sales = sub.add_parser("sales", help="record and manage sales")
    ssub = sales.add_subparsers(dest="action", required=True)
    ssub.add_parser("list")
    s_rec = ssub.add_parser("record")
    s_rec.add_argument("items", nargs="+", type=_cart_entry, metavar="PRODUCT_ID=QTY")
    s_rec.add_argument("--market", default=None, help="market name (defaults to the last one used)")
    s_rec.add_argument("--date", type=_iso_date, default=None, help="sale date (defaults to the last one used)")
    s_rec.add_argument("--market-cost", type=float, default=0.0)
    s_del = ssub.add_parser("delete")
    s_del.add_argument("sale_id")

    report = sub.add_parser("report", help="totals and monthly statistics")
    window = report.add_mutually_exclusive_group()
    window.add_argument("--year", action="store_true", help="current calendar year only")
    window.add_argument("--from", dest="start", type=_iso_date, default=None)
    report.add_argument("--to", dest="end", type=_iso_date, default=None)
    report.add_argument("--xlsx", type=Path, default=None, help="also export an Excel workbook (file or directory)")

    return parser


def _run(app: AppContainer, args: argparse.Namespace) -> None:
    if args.command == "products":
        if args.action == "list":
            for p in app.catalog.list_products():
                print(f"{p.id}  {p.name:<30} price={p.price:.2f} cost={p.cost:.2f} margin={p.margin:.2f}")
        elif args.action == "add":
            p = app.catalog.add_product(args.name, args.price, args.cost)
            print(p.id)
        elif args.action == "remove":
            app.catalog.remove_product(args.product_id)
        return

    if args.command == "sales":
        if args.action == "list":
            for s in app.sales.list_sales():
                print(
                    f"{s.id}  {s.date.isoformat()}  {s.market_name:<24} "
                    f"revenue={s.total_revenue:.2f} cost={s.total_cost:.2f} profit={s.profit:.2f}"
                )
        elif args.action == "record":
            cart: dict[str, int] = {}
            for product_id, qty in args.items:
                cart[product_id] = cart.get(product_id, 0) + qty
            market = args.market if args.market is not None else app.settings.last_market_name()
            sale_date = args.date or app.settings.last_sale_date()
            sale = app.sales.build_sale(cart, market, sale_date, market_cost=args.market_cost)
            print(f"{sale.id}  revenue={sale.total_revenue:.2f} cost={sale.total_cost:.2f} profit={sale.profit:.2f}")
        elif args.action == "delete":
            app.sales.delete_sale(args.sale_id)
        return

    if args.command == "report":
        if args.year and args.end is not None:
            raise ValidationError("--to cannot be combined with --year.")
        if args.year:
            report_filter = ReportFilter.year()
        elif args.start is not None or args.end is not None:
            report_filter = ReportFilter.custom(args.start, args.end)
        else:
            report_filter = ReportFilter.all()

        report = app.reporting.build_report(report_filter)
        print(app.reporting.describe_period(report_filter))
        for b in report.monthly_stats:
            print(f"{b.month}  sales={b.count} revenue={b.revenue:.2f} cost={b.cost:.2f} profit={b.profit:.2f}")
        t = report.totals
        print(f"TOTAL    sales={len(report.filtered_sales)} revenue={t.revenue:.2f} cost={t.cost:.2f} profit={t.profit:.2f}")

        if args.xlsx is not None:
            target = args.xlsx
            if target.is_dir():
                target = target / app.reporting.default_export_name(report_filter)
            print(app.reporting.export_sales_report_excel(target, report))
        return

    raise ValidationError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.db is not None:
        db_path = args.db
        logs_dir = db_path.parent / "logs"
    else:
        paths = get_app_paths()
        db_path, logs_dir = paths.db_path, paths.logs_dir
    setup_logging(logs_dir, level=logging.INFO)

    try:
        app = build_container(db_path)
        _run(app, args)
    except AppError as e:
        log.warning("command_failed command=%s error=%s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
