from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Callable

from marketledger.repositories.sqlite_repo import SqliteRepository
from marketledger.services.catalog_service import CatalogService
from marketledger.services.reporting_service import ReportingService
from marketledger.services.sales_service import SalesService
from marketledger.services.settings_service import SettingsService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    catalog: CatalogService
    sales: SalesService
    reporting: ReportingService
    settings: SettingsService


def build_container(db_path: Path | str, clock: Callable[[], datetime] = datetime.now) -> AppContainer:
    repo = SqliteRepository(db_path)
    repo.init_db()

    def today() -> date:
        return clock().date()

    catalog = CatalogService(repo)
    sales = SalesService(repo, catalog, clock=clock)
    reporting = ReportingService(repo, today=today)
    settings = SettingsService(repo, today=today)

    return AppContainer(
        repo=repo,
        catalog=catalog,
        sales=sales,
        reporting=reporting,
        settings=settings,
    )
