from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from marketledger.domain.errors import ValidationError
from marketledger.domain.models import MonthlyBucket, ReportFilter, Sale, SalesReport, Totals
from marketledger.repositories.contracts import LedgerStore, SALES

log = logging.getLogger("marketledger.reports")


class ReportingService:
    def __init__(self, repo: LedgerStore, today: Callable[[], date] = date.today):
        self.repo = repo
        self.today = today

    def filter_sales(self, sales: Iterable[Sale], report_filter: ReportFilter) -> list[Sale]:
        """
        all    -> every sale
        year   -> Jan 1 .. Dec 31 of the current year, inclusive
        custom -> start .. end inclusive; with a bound missing, every sale
        """
        sales = list(sales)
        mode = report_filter.mode
        if mode == "all":
            return sales
        if mode == "year":
            year = self.today().year
            start, end = date(year, 1, 1), date(year, 12, 31)
        elif mode == "custom":
            if report_filter.start is None or report_filter.end is None:
                log.debug(
                    "custom_range_incomplete start=%s end=%s, using all sales",
                    report_filter.start, report_filter.end,
                )
                return sales
            start, end = report_filter.start, report_filter.end
        else:
            raise ValidationError(f"Unknown report filter: {mode}")
        return [s for s in sales if start <= s.date <= end]

    @staticmethod
    def totals(sales: Iterable[Sale]) -> Totals:
        revenue = cost = profit = 0.0
        for s in sales:
            revenue += s.total_revenue
            cost += s.total_cost
            profit += s.profit
        return Totals(revenue=revenue, cost=cost, profit=profit)

    @staticmethod
    def monthly_stats(sales: Iterable[Sale]) -> list[MonthlyBucket]:
        acc: dict[str, list] = {}
        for s in sales:
            key = f"{s.date.year:04d}-{s.date.month:02d}"
            bucket = acc.setdefault(key, [0, 0.0, 0.0, 0.0])
            bucket[0] += 1
            bucket[1] += s.total_revenue
            bucket[2] += s.total_cost
            bucket[3] += s.profit
        # zero-padded YYYY-MM keys sort chronologically as strings
        return [
            MonthlyBucket(month=key, count=v[0], revenue=v[1], cost=v[2], profit=v[3])
            for key, v in sorted(acc.items(), reverse=True)
        ]

    def build_report(self, report_filter: Optional[ReportFilter] = None) -> SalesReport:
        report_filter = report_filter or ReportFilter.all()
        filtered = sorted(
            self.filter_sales(self.repo.get_all(SALES), report_filter),
            key=lambda s: s.timestamp,
            reverse=True,
        )
        report = SalesReport(
            filtered_sales=tuple(filtered),
            totals=self.totals(filtered),
            monthly_stats=tuple(self.monthly_stats(filtered)),
            report_filter=report_filter,
        )
        log.info(
            "report_built filter=%s sales=%s revenue=%.2f profit=%.2f",
            report_filter.mode, len(filtered), report.totals.revenue, report.totals.profit,
        )
        return report

    def suggest_market_names(self, target_date: date) -> list[str]:
        """Distinct market names already used on ``target_date``, first use first."""
        same_day = sorted(self.repo.get_all_by_index(SALES, "date", target_date), key=lambda s: s.timestamp)
        names: list[str] = []
        for s in same_day:
            if s.market_name and s.market_name not in names:
                names.append(s.market_name)
        return names

    def describe_period(self, report_filter: ReportFilter) -> str:
        if report_filter.mode == "year":
            return f"Year: {self.today().year}"
        if report_filter.mode == "custom" and report_filter.start and report_filter.end:
            return f"Period: {report_filter.start:%d/%m/%Y} - {report_filter.end:%d/%m/%Y}"
        return "All sales"

    def default_export_name(self, report_filter: ReportFilter) -> str:
        return f"sales_{report_filter.mode}_{self.today():%Y-%m-%d}.xlsx"

    def export_sales_report_excel(self, path: Path | str, report: SalesReport, title: str = "Market Sales Report") -> Path:
        if not report.filtered_sales:
            raise ValidationError("No sales to export.")

        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        totals = report.totals

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = title
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = self.describe_period(report.report_filter)
        ws["A4"] = "Generated"
        ws["B4"] = datetime.now().strftime("%d/%m/%Y %H:%M")

        rows = [
            ("Sales count", len(report.filtered_sales), "int"),
            ("Total revenue", float(totals.revenue), "money"),
            ("Total cost", float(totals.cost), "money"),
            ("Total profit", float(totals.profit), "money"),
        ]

        start_row = 6
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])
        ws[f"A{start_row + len(rows) - 1}"].font = Font(bold=True)

        set_widths(ws, {"A": 20, "B": 34})

        # -------- 2) Sales --------
        ws2 = wb.create_sheet("Sales")
        ws2.append(["Date", "Market", "Products", "Market Cost", "Revenue", "Cost", "Profit"])
        bold_row(ws2, 1)

        for out_row, s in enumerate(report.filtered_sales, start=2):
            items_text = ", ".join(f"{it.product_name} x{it.quantity}" for it in s.items)
            ws2.append([
                s.date, s.market_name, items_text,
                float(s.market_cost), float(s.total_revenue), float(s.total_cost), float(s.profit),
            ])
            ws2[f"A{out_row}"].number_format = "DD/MM/YYYY"
            for col in "DEFG":
                money(ws2[f"{col}{out_row}"])

        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 12, "B": 24, "C": 60, "D": 14, "E": 14, "F": 14, "G": 14})
        add_table(ws2, "SalesDetail", 1, 1, ws2.max_row, 7)

        # -------- 3) Monthly --------
        ws3 = wb.create_sheet("Monthly")
        ws3.append(["Month", "Sales", "Revenue", "Cost", "Profit"])
        bold_row(ws3, 1)

        for out_row, b in enumerate(report.monthly_stats, start=2):
            ws3.append([b.month, int(b.count), float(b.revenue), float(b.cost), float(b.profit)])
            for col in "CDE":
                money(ws3[f"{col}{out_row}"])

        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 10, "B": 8, "C": 14, "D": 14, "E": 14})
        add_table(ws3, "MonthlyStats", 1, 1, ws3.max_row, 5)

        target = Path(path)
        wb.save(target)
        log.info("report_exported path=%s sales=%s", target, len(report.filtered_sales))
        return target
