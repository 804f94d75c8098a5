from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: float
    cost: float

    @property
    def margin(self) -> float:
        return self.price - self.cost


@dataclass(frozen=True)
class SaleLineItem:
    product_id: str
    product_name: str
    quantity: int
    price_at_sale: float
    cost_at_sale: float

    @property
    def line_revenue(self) -> float:
        return self.price_at_sale * self.quantity

    @property
    def line_cost(self) -> float:
        return self.cost_at_sale * self.quantity


@dataclass(frozen=True)
class Sale:
    id: str
    date: date
    timestamp: datetime
    market_name: str
    items: tuple[SaleLineItem, ...]
    market_cost: float
    total_revenue: float
    total_cost: float
    profit: float


@dataclass(frozen=True)
class Setting:
    key: str
    value: Any


@dataclass(frozen=True)
class Totals:
    revenue: float = 0.0
    cost: float = 0.0
    profit: float = 0.0


@dataclass(frozen=True)
class MonthlyBucket:
    month: str  # "YYYY-MM"
    count: int
    revenue: float
    cost: float
    profit: float


@dataclass(frozen=True)
class ReportFilter:
    mode: str = "all"
    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def all(cls) -> "ReportFilter":
        return cls("all")

    @classmethod
    def year(cls) -> "ReportFilter":
        return cls("year")

    @classmethod
    def custom(cls, start: Optional[date], end: Optional[date]) -> "ReportFilter":
        return cls("custom", start, end)


@dataclass(frozen=True)
class SalesReport:
    """Read-only aggregate handed to the document renderer."""

    filtered_sales: tuple[Sale, ...]
    totals: Totals
    monthly_stats: tuple[MonthlyBucket, ...]
    report_filter: ReportFilter = ReportFilter()


def sale_totals(items: Iterable[SaleLineItem], market_cost: float) -> tuple[float, float, float]:
    """
    Returns (total_revenue, total_cost, profit):
      total_revenue = sum(price_at_sale * quantity)
      total_cost    = sum(cost_at_sale * quantity) + market_cost
      profit        = total_revenue - total_cost
    """
    items = list(items)
    total_revenue = sum((it.line_revenue for it in items), 0.0)
    total_cost = sum((it.line_cost for it in items), 0.0) + float(market_cost)
    return total_revenue, total_cost, total_revenue - total_cost
