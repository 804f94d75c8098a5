from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from marketledger.domain.models import Sale, Setting
from marketledger.repositories.contracts import LedgerStore, SALES, SETTINGS


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def save_sale(self, sale: Sale) -> None: ...
    def save_setting(self, key: str, value: object) -> None: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for transactional write use-cases.

    Saves are queued and written with a single ``put_many`` when the block
    exits cleanly, so a sale, its items and the remembered settings commit
    or roll back together. A block that raises writes nothing.
    """

    repo: LedgerStore
    pending: list[tuple[str, Any]] = field(default_factory=list)

    def __enter__(self) -> "RepositoryUnitOfWork":
        self.pending.clear()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        pending, self.pending = self.pending, []
        if exc_type is None and pending:
            self.repo.put_many(pending)

    def save_sale(self, sale: Sale) -> None:
        self.pending.append((SALES, sale))

    def save_setting(self, key: str, value: object) -> None:
        self.pending.append((SETTINGS, Setting(key=key, value=value)))
