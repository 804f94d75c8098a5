from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from marketledger.domain.errors import StorageUnavailableError
from marketledger.domain.models import Product, Sale, SaleLineItem, Setting
from marketledger.repositories.contracts import PRODUCTS, SALES, SETTINGS

log = logging.getLogger(__name__)

# (collection, index) -> column
INDEXES = {
    (PRODUCTS, "name"): "name",
    (SALES, "date"): "date",
    (SALES, "timestamp"): "timestamp",
}


class SqliteRepository:
    """Local ledger store with three collections: products, sales, settings.

    Every record is keyed by its identity field (``id``, or ``key`` for
    settings). ``put`` is an upsert and always replaces the whole record.
    Timestamps are stored as ISO text with their full precision.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        self._opened = False

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path)
            conn.execute("PRAGMA foreign_keys = ON;")
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Cannot open ledger store at {self.db_path}: {exc}") from exc
        return conn

    def _conn(self) -> sqlite3.Connection:
        if not self._opened:
            raise StorageUnavailableError("Ledger store is not opened.")
        return self._connect()

    def init_db(self) -> None:
        self.run_migrations()
        self._opened = True

    def close(self) -> None:
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def run_migrations(self) -> None:
        conn = self._connect()
        backup_path = None
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                if backup_path is None:
                    backup_path = self._create_pre_migration_backup()
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("schema_migrated version=%s db=%s", version, self.db_path)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise StorageUnavailableError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            price REAL NOT NULL CHECK(price >= 0),
            cost REAL NOT NULL CHECK(cost >= 0)
        )
        """
        )

        cur.execute("""
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            date TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            market_name TEXT NOT NULL,
            market_cost REAL NOT NULL CHECK(market_cost >= 0),
            total_revenue REAL NOT NULL,
            total_cost REAL NOT NULL,
            profit REAL NOT NULL
        )
        """)

        # product_id is a snapshot reference, not a foreign key: deleting a
        # product must leave historical sales intact.
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            sale_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            price_at_sale REAL NOT NULL CHECK(price_at_sale >= 0),
            cost_at_sale REAL NOT NULL CHECK(cost_at_sale >= 0),
            PRIMARY KEY(sale_id, position),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
        )

    def _migration_v2_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_name ON products(name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_date ON sales(date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_timestamp ON sales(timestamp)")

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Collection contract ----------
    def put(self, collection: str, record: Any) -> None:
        self.put_many([(collection, record)])

    def put_many(self, writes: Iterable[tuple[str, Any]]) -> None:
        """Upserts every (collection, record) pair in one transaction."""
        writes = [(self._dispatch(collection, "put"), record) for collection, record in writes]
        conn = self._conn()
        cur = conn.cursor()
        try:
            for writer, record in writes:
                writer(cur, record)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, collection: str, key: str) -> Optional[Any]:
        reader = self._dispatch(collection, "select")
        conn = self._conn()
        try:
            rows = reader(conn.cursor(), "WHERE {key_col} = ?", (key,))
        finally:
            conn.close()
        return rows[0] if rows else None

    def get_all(self, collection: str) -> list[Any]:
        reader = self._dispatch(collection, "select")
        conn = self._conn()
        try:
            return reader(conn.cursor(), "", ())
        finally:
            conn.close()

    def get_all_by_index(self, collection: str, index: str, value: Any) -> list[Any]:
        reader = self._dispatch(collection, "select")
        column = INDEXES.get((collection, index))
        if column is None:
            raise StorageUnavailableError(f"Unknown index: {collection}.{index}")
        conn = self._conn()
        try:
            return reader(conn.cursor(), f"WHERE {column} = ?", (self._to_db(value),))
        finally:
            conn.close()

    def delete(self, collection: str, key: str) -> bool:
        self._dispatch(collection, "select")
        key_col = "key" if collection == SETTINGS else "id"
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(f"DELETE FROM {collection} WHERE {key_col} = ?", (key,))
            changed = cur.rowcount > 0
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return bool(changed)

    def _dispatch(self, collection: str, op: str):
        if collection not in (PRODUCTS, SALES, SETTINGS):
            raise StorageUnavailableError(f"Unknown collection: {collection}")
        return getattr(self, f"_{op}_{collection}")

    @staticmethod
    def _to_db(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, date):
            return value.isoformat()
        return value

    @staticmethod
    def _expect(record: Any, kind: type) -> None:
        if not isinstance(record, kind):
            raise TypeError(f"Expected {kind.__name__}, got {type(record).__name__}")

    # ---------- Products ----------
    def _put_products(self, cur: sqlite3.Cursor, product: Product) -> None:
        self._expect(product, Product)
        cur.execute(
            """
            INSERT INTO products (id, name, price, cost) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET name=excluded.name, price=excluded.price, cost=excluded.cost
        """,
            (product.id, product.name, float(product.price), float(product.cost)),
        )

    def _select_products(self, cur: sqlite3.Cursor, where: str, params: tuple) -> list[Product]:
        cur.execute(
            f"""
            SELECT id, name, price, cost
            FROM products
            {where.format(key_col='id')}
        """,
            params,
        )
        return [
            Product(id=str(r[0]), name=str(r[1]), price=float(r[2]), cost=float(r[3]))
            for r in cur.fetchall()
        ]

    # ---------- Sales ----------
    def _put_sales(self, cur: sqlite3.Cursor, sale: Sale) -> None:
        self._expect(sale, Sale)
        cur.execute(
            """
            INSERT INTO sales (id, date, timestamp, market_name, market_cost, total_revenue, total_cost, profit)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                date=excluded.date,
                timestamp=excluded.timestamp,
                market_name=excluded.market_name,
                market_cost=excluded.market_cost,
                total_revenue=excluded.total_revenue,
                total_cost=excluded.total_cost,
                profit=excluded.profit
        """,
            (
                sale.id,
                self._to_db(sale.date),
                self._to_db(sale.timestamp),
                sale.market_name,
                float(sale.market_cost),
                float(sale.total_revenue),
                float(sale.total_cost),
                float(sale.profit),
            ),
        )
        cur.execute("DELETE FROM sale_items WHERE sale_id = ?", (sale.id,))
        cur.executemany(
            """
            INSERT INTO sale_items (sale_id, position, product_id, product_name, quantity, price_at_sale, cost_at_sale)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            [
                (sale.id, pos, it.product_id, it.product_name, int(it.quantity), float(it.price_at_sale), float(it.cost_at_sale))
                for pos, it in enumerate(sale.items)
            ],
        )

    def _select_sales(self, cur: sqlite3.Cursor, where: str, params: tuple) -> list[Sale]:
        cur.execute(
            f"""
            SELECT id, date, timestamp, market_name, market_cost, total_revenue, total_cost, profit
            FROM sales
            {where.format(key_col='id')}
        """,
            params,
        )
        headers = cur.fetchall()
        if not headers:
            return []

        items_by_sale: dict[str, list[SaleLineItem]] = {str(h[0]): [] for h in headers}
        cur.execute(
            f"""
            SELECT si.sale_id, si.product_id, si.product_name, si.quantity, si.price_at_sale, si.cost_at_sale
            FROM sale_items si
            JOIN sales ON sales.id = si.sale_id
            {where.format(key_col='id')}
            ORDER BY si.sale_id, si.position
        """,
            params,
        )
        for r in cur.fetchall():
            items_by_sale[str(r[0])].append(
                SaleLineItem(
                    product_id=str(r[1]),
                    product_name=str(r[2]),
                    quantity=int(r[3]),
                    price_at_sale=float(r[4]),
                    cost_at_sale=float(r[5]),
                )
            )

        return [
            Sale(
                id=str(h[0]),
                date=date.fromisoformat(str(h[1])),
                timestamp=datetime.fromisoformat(str(h[2])),
                market_name=str(h[3]),
                items=tuple(items_by_sale[str(h[0])]),
                market_cost=float(h[4]),
                total_revenue=float(h[5]),
                total_cost=float(h[6]),
                profit=float(h[7]),
            )
            for h in headers
        ]

    # ---------- Settings ----------
    def _put_settings(self, cur: sqlite3.Cursor, setting: Setting) -> None:
        self._expect(setting, Setting)
        cur.execute(
            """
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
            (setting.key, json.dumps(setting.value, ensure_ascii=False)),
        )

    def _select_settings(self, cur: sqlite3.Cursor, where: str, params: tuple) -> list[Setting]:
        cur.execute(f"SELECT key, value FROM settings {where.format(key_col='key')}", params)
        return [
            Setting(key=str(r[0]), value=(json.loads(r[1]) if r[1] is not None else None))
            for r in cur.fetchall()
        ]
