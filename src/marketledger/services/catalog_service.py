from __future__ import annotations

import logging
import math
import uuid
from typing import Optional

from marketledger.domain.errors import InvalidProductError, NotFoundError
from marketledger.domain.models import Product
from marketledger.repositories.contracts import LedgerStore, PRODUCTS

log = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, repo: LedgerStore):
        self.repo = repo

    def list_products(self) -> list[Product]:
        return sorted(self.repo.get_all(PRODUCTS), key=lambda p: p.name.casefold())

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.repo.get(PRODUCTS, product_id)

    def find_by_name(self, name: str) -> list[Product]:
        return self.repo.get_all_by_index(PRODUCTS, "name", (name or "").strip())

    def add_product(self, name: str, price: float, cost: float) -> Product:
        product = self._validated(uuid.uuid4().hex, name, price, cost)
        self.repo.put(PRODUCTS, product)
        log.info("product_added id=%s name=%s", product.id, product.name)
        return product

    def update_product(self, product: Product) -> Product:
        if self.repo.get(PRODUCTS, product.id) is None:
            raise NotFoundError("Product not found.")
        updated = self._validated(product.id, product.name, product.price, product.cost)
        self.repo.put(PRODUCTS, updated)
        log.info("product_updated id=%s", updated.id)
        return updated

    def remove_product(self, product_id: str) -> None:
        # Sales keep their own price/cost snapshot; nothing else to touch.
        removed = self.repo.delete(PRODUCTS, product_id)
        if not removed:
            raise NotFoundError("Product not found.")
        log.info("product_removed id=%s", product_id)

    @staticmethod
    def _validated(product_id: str, name: str, price: float, cost: float) -> Product:
        name = (name or "").strip()
        if not name:
            raise InvalidProductError("Name is required.")
        try:
            price = float(price)
            cost = float(cost)
        except (TypeError, ValueError) as e:
            raise InvalidProductError("Price and cost must be numbers.") from e
        if not (math.isfinite(price) and math.isfinite(cost)):
            raise InvalidProductError("Price and cost must be finite numbers.")
        if price < 0:
            raise InvalidProductError("Price must be >= 0.")
        if cost < 0:
            raise InvalidProductError("Cost must be >= 0.")
        return Product(id=product_id, name=name, price=price, cost=cost)
