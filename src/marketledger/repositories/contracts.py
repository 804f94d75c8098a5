from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol

PRODUCTS = "products"
SALES = "sales"
SETTINGS = "settings"


class LedgerStore(Protocol):
    def put(self, collection: str, record: Any) -> None: ...
    def put_many(self, writes: Iterable[tuple[str, Any]]) -> None: ...
    def get(self, collection: str, key: str) -> Optional[Any]: ...
    def get_all(self, collection: str) -> list[Any]: ...
    def delete(self, collection: str, key: str) -> bool: ...
    def get_all_by_index(self, collection: str, index: str, value: Any) -> list[Any]: ...
