from dataclasses import replace
from datetime import date, datetime
from pathlib import Path

import pytest
from conftest import FixedClock, seed_catalog

from marketledger.domain.errors import (
    EmptySaleError,
    MissingMarketNameError,
    StorageUnavailableError,
    UnknownProductError,
    ValidationError,
)
from marketledger.repositories.sqlite_repo import SqliteRepository
from marketledger.services.catalog_service import CatalogService
from marketledger.services.sales_service import SalesService
from marketledger.services.settings_service import SettingsService

SALE_DAY = date(2026, 5, 9)


def _setup(tmp_path: Path, repo_cls=SqliteRepository):
    repo = repo_cls(tmp_path / "sales.db")
    repo.init_db()
    catalog = CatalogService(repo)
    clock = FixedClock(datetime(2026, 5, 20, 14, 35, 12, 987654))
    sales = SalesService(repo, catalog, clock=clock)
    return repo, catalog, sales


def test_build_sale_snapshots_prices_and_computes_totals(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, b = seed_catalog(catalog)

    sale = sales.build_sale({a.id: 3, b.id: 0}, "Harbour Fair", SALE_DAY, market_cost=5)

    assert len(sale.items) == 1
    item = sale.items[0]
    assert (item.product_id, item.product_name, item.quantity) == (a.id, "A", 3)
    assert (item.price_at_sale, item.cost_at_sale) == (10.0, 4.0)
    assert sale.total_revenue == 30.0
    assert sale.total_cost == 17.0
    assert sale.profit == 13.0
    assert repo.get("sales", sale.id) == sale


def test_totals_match_formulas_for_multi_item_sale(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, b = seed_catalog(catalog)
    c = catalog.add_product("C", 3.35, 1.15)

    sale = sales.build_sale({a.id: 2, b.id: 5, c.id: 7}, "Harbour Fair", SALE_DAY, market_cost=12.4)

    revenue = sum(it.price_at_sale * it.quantity for it in sale.items)
    cost = sum(it.cost_at_sale * it.quantity for it in sale.items) + sale.market_cost
    assert sale.total_revenue == revenue
    assert sale.total_cost == cost
    assert sale.profit == sale.total_revenue - sale.total_cost


def test_timestamp_combines_sale_date_with_current_time(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    sale = sales.build_sale({a.id: 1}, "Harbour Fair", SALE_DAY)

    assert sale.date == SALE_DAY
    assert sale.timestamp == datetime(2026, 5, 9, 14, 35, 12)
    assert sale.market_cost == 0.0


def test_market_name_is_trimmed(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    sale = sales.build_sale({a.id: 1}, "  Harbour Fair  ", SALE_DAY)

    assert sale.market_name == "Harbour Fair"


def test_empty_effective_cart_fails(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, b = seed_catalog(catalog)

    with pytest.raises(EmptySaleError):
        sales.build_sale({a.id: 0, b.id: -2}, "Harbour Fair", SALE_DAY)
    with pytest.raises(EmptySaleError):
        sales.build_sale({}, "Harbour Fair", SALE_DAY)
    assert repo.get_all("sales") == []


@pytest.mark.parametrize("market_name", ["", "   ", "\t\n", None])
def test_blank_market_name_fails(tmp_path: Path, market_name):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    with pytest.raises(MissingMarketNameError):
        sales.build_sale({a.id: 1}, market_name, SALE_DAY)
    assert repo.get_all("sales") == []


def test_unknown_product_aborts_whole_sale(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    with pytest.raises(UnknownProductError):
        sales.build_sale({a.id: 2, "ghost": 1}, "Harbour Fair", SALE_DAY)
    assert repo.get_all("sales") == []


def test_unknown_product_with_zero_quantity_is_ignored(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    sale = sales.build_sale({a.id: 1, "ghost": 0}, "Harbour Fair", SALE_DAY)

    assert [it.product_id for it in sale.items] == [a.id]


@pytest.mark.parametrize("market_cost", [-1, "free"])
def test_invalid_market_cost_fails(tmp_path: Path, market_cost):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    with pytest.raises(ValidationError, match="Market cost"):
        sales.build_sale({a.id: 1}, "Harbour Fair", SALE_DAY, market_cost=market_cost)


def test_fractional_quantity_fails(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)

    with pytest.raises(ValidationError, match="whole number"):
        sales.build_sale({a.id: 1.5}, "Harbour Fair", SALE_DAY)


def test_catalog_edits_and_deletes_do_not_touch_history(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, b = seed_catalog(catalog)
    sale = sales.build_sale({a.id: 3, b.id: 1}, "Harbour Fair", SALE_DAY, market_cost=5)

    catalog.update_product(replace(a, price=99.0, cost=50.0))
    catalog.remove_product(b.id)

    stored = sales.get_sale(sale.id)
    assert stored == sale
    assert (stored.total_revenue, stored.total_cost, stored.profit) == (36.0, 19.0, 17.0)


def test_build_sale_remembers_market_and_date(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)
    settings = SettingsService(repo, today=lambda: date(2026, 1, 1))

    assert settings.last_market_name() == ""
    assert settings.last_sale_date() == date(2026, 1, 1)

    sales.build_sale({a.id: 1}, " Harbour Fair ", SALE_DAY)

    assert settings.last_market_name() == "Harbour Fair"
    assert settings.last_sale_date() == SALE_DAY


def test_failed_write_leaves_nothing_behind(tmp_path: Path):
    class FailingRepo(SqliteRepository):
        def _put_sales(self, cur, sale):
            super()._put_sales(cur, sale)
            raise RuntimeError("boom")

    repo, catalog, sales = _setup(tmp_path, repo_cls=FailingRepo)
    a, b = seed_catalog(catalog)

    with pytest.raises(RuntimeError):
        sales.build_sale({a.id: 3, b.id: 2}, "Harbour Fair", SALE_DAY)

    assert repo.get_all("sales") == []
    assert repo.get_all("settings") == []
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM sale_items")
    assert cur.fetchone()[0] == 0
    conn.close()


def test_failed_settings_write_rolls_back_the_sale(tmp_path: Path):
    class FailingSettingsRepo(SqliteRepository):
        def _put_settings(self, cur, setting):
            raise RuntimeError("disk full")

    repo, catalog, sales = _setup(tmp_path, repo_cls=FailingSettingsRepo)
    a, b = seed_catalog(catalog)

    with pytest.raises(RuntimeError, match="disk full"):
        sales.build_sale({a.id: 3, b.id: 2}, "Harbour Fair", SALE_DAY)

    assert repo.get_all("sales") == []
    assert repo.get_all("settings") == []
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM sale_items")
    assert cur.fetchone()[0] == 0
    conn.close()


def test_unavailable_store_surfaces_to_caller(tmp_path: Path):
    class UnavailableUnitOfWork:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return None

        def save_sale(self, sale):
            raise StorageUnavailableError("Ledger store is not opened.")

        def save_setting(self, key, value):
            raise AssertionError("settings must not be written")

    repo, catalog, _ = _setup(tmp_path)
    a, _ = seed_catalog(catalog)
    sales = SalesService(repo, catalog, uow_factory=UnavailableUnitOfWork)

    with pytest.raises(StorageUnavailableError):
        sales.build_sale({a.id: 1}, "Harbour Fair", SALE_DAY)
    assert repo.get_all("sales") == []


def test_list_sales_newest_first_and_delete(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    a, _ = seed_catalog(catalog)
    older = sales.build_sale({a.id: 1}, "Harbour Fair", date(2026, 4, 1))
    newer = sales.build_sale({a.id: 2}, "Old Town", date(2026, 4, 2))

    assert [s.id for s in sales.list_sales()] == [newer.id, older.id]

    sales.delete_sale(older.id)
    assert [s.id for s in sales.list_sales()] == [newer.id]


def test_settings_service_plain_lookup(tmp_path: Path):
    repo, catalog, sales = _setup(tmp_path)
    settings = SettingsService(repo, today=lambda: date(2026, 1, 1))

    assert settings.get("theme") is None
    assert settings.get("theme", "light") == "light"
    settings.set("theme", "dark")
    assert settings.get("theme") == "dark"

    settings.set("last_sale_date", "not-a-date")
    assert settings.last_sale_date() == date(2026, 1, 1)
