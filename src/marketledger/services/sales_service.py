from __future__ import annotations

import logging
import math
import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Iterable, Mapping, Optional

from marketledger.domain.errors import (
    EmptySaleError,
    MissingMarketNameError,
    NotFoundError,
    UnknownProductError,
    ValidationError,
)
from marketledger.domain.models import Sale, SaleLineItem, sale_totals
from marketledger.repositories.contracts import LedgerStore, SALES
from marketledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from marketledger.services.settings_service import LAST_MARKET_NAME, LAST_SALE_DATE

log = logging.getLogger("marketledger.sales")


class SalesService:
    def __init__(
        self,
        repo: LedgerStore,
        catalog_service,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.catalog = catalog_service
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.clock = clock

    def build_sale(
        self,
        cart: Mapping[str, int],
        market_name: str,
        sale_date: date,
        market_cost: float = 0.0,
    ) -> Sale:
        """
        cart: {product_id: quantity}; entries with quantity <= 0 are not in the cart.

        Prices and costs are snapshotted from the catalog at this moment.
        Nothing is written unless every check passes.
        """
        items: list[SaleLineItem] = []
        for product_id, qty in cart.items():
            qty = self._quantity(qty)
            if qty <= 0:
                continue
            product = self.catalog.get_product(product_id)
            if product is None:
                raise UnknownProductError(f"Unknown product: {product_id}")
            items.append(
                SaleLineItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=qty,
                    price_at_sale=float(product.price),
                    cost_at_sale=float(product.cost),
                )
            )

        if not items:
            raise EmptySaleError("Add at least one product to the sale.")

        market_name = (market_name or "").strip()
        if not market_name:
            raise MissingMarketNameError("Market name is required.")

        market_cost = self._amount(market_cost, "Market cost")
        if isinstance(sale_date, datetime):
            sale_date = sale_date.date()

        total_revenue, total_cost, profit = sale_totals(items, market_cost)
        sale = Sale(
            id=uuid.uuid4().hex,
            date=sale_date,
            timestamp=datetime.combine(sale_date, self.clock().time().replace(microsecond=0)),
            market_name=market_name,
            items=tuple(items),
            market_cost=market_cost,
            total_revenue=total_revenue,
            total_cost=total_cost,
            profit=profit,
        )

        with self.uow_factory() as uow:
            uow.save_sale(sale)
            uow.save_setting(LAST_MARKET_NAME, market_name)
            uow.save_setting(LAST_SALE_DATE, sale_date.isoformat())

        log.info(
            "sale_created sale_id=%s date=%s market=%s items=%s revenue=%.2f profit=%.2f",
            sale.id, sale.date.isoformat(), sale.market_name, len(sale.items), sale.total_revenue, sale.profit,
        )
        return sale

    def edit_sale(
        self,
        sale_id: str,
        items: Iterable[SaleLineItem],
        market_cost: Optional[float] = None,
    ) -> Sale:
        """
        Replaces the sale's items and market cost, recomputing all totals.

        Lines whose quantity is <= 0 are dropped. Id, date, timestamp and
        market name are kept from the stored sale. ``market_cost=None`` keeps
        the stored market cost.
        """
        original = self.repo.get(SALES, sale_id)
        if original is None:
            raise NotFoundError("Sale not found.")

        kept: list[SaleLineItem] = []
        for it in items:
            qty = self._quantity(it.quantity)
            if qty <= 0:
                continue
            kept.append(
                replace(
                    it,
                    quantity=qty,
                    price_at_sale=self._amount(it.price_at_sale, "Price"),
                    cost_at_sale=self._amount(it.cost_at_sale, "Cost"),
                )
            )
        if not kept:
            raise EmptySaleError("A sale must keep at least one product.")

        if market_cost is None:
            market_cost = original.market_cost
        market_cost = self._amount(market_cost, "Market cost")

        total_revenue, total_cost, profit = sale_totals(kept, market_cost)
        updated = replace(
            original,
            items=tuple(kept),
            market_cost=market_cost,
            total_revenue=total_revenue,
            total_cost=total_cost,
            profit=profit,
        )

        with self.uow_factory() as uow:
            uow.save_sale(updated)

        log.info(
            "sale_edited sale_id=%s items=%s revenue=%.2f profit=%.2f",
            updated.id, len(updated.items), updated.total_revenue, updated.profit,
        )
        return updated

    def delete_sale(self, sale_id: str) -> None:
        if not self.repo.delete(SALES, sale_id):
            raise NotFoundError("Sale not found.")
        log.info("sale_deleted sale_id=%s", sale_id)

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return self.repo.get(SALES, sale_id)

    def list_sales(self) -> list[Sale]:
        return sorted(self.repo.get_all(SALES), key=lambda s: s.timestamp, reverse=True)

    @staticmethod
    def _quantity(value) -> int:
        try:
            qty = float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError("Quantity must be a whole number.") from e
        if not qty.is_integer():
            raise ValidationError("Quantity must be a whole number.")
        return int(qty)

    @staticmethod
    def _amount(value, label: str) -> float:
        try:
            amount = float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"{label} must be a number.") from e
        if not math.isfinite(amount) or amount < 0:
            raise ValidationError(f"{label} must be >= 0.")
        return amount
