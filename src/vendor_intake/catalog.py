"""
Catalog store for vendor-intake.

Approved products end up here. The store is an interface with two
backends: a local SQLite table (the default, also served by the Datasette
plugin) and a remote catalog service reached over HTTP.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx

from .config import CatalogStoreConfig, IntakeConfig
from .models import CatalogEntry

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20


class StoreError(Exception):
    """The catalog store could not complete an operation."""


class CatalogStore(ABC):
    """Base class for catalog stores."""

    name: str = "base"

    @abstractmethod
    async def insert(self, entry: CatalogEntry) -> dict[str, Any]:
        """Store an entry and return the stored product. Raises StoreError."""
        pass

    @abstractmethod
    async def list_entries(self) -> list[dict[str, Any]]:
        """Return every stored product. Raises StoreError."""
        pass


def _row_to_product(row: sqlite3.Row) -> dict[str, Any]:
    product = dict(row)
    score = product.pop("ai_score", None)
    decision = product.pop("ai_decision", None)
    evaluated_at = product.pop("evaluated_at", None)
    if score is not None:
        product["ai_score"] = score
        product["ai_evaluation"] = {
            "score": score,
            "decision": decision,
            "evaluated_at": evaluated_at,
        }
    return product


class SQLiteCatalogStore(CatalogStore):
    """Catalog backed by the products table of the local database."""

    name = "sqlite"

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    async def insert(self, entry: CatalogEntry) -> dict[str, Any]:
        now = datetime.now(UTC).isoformat()
        summary = entry.ai_evaluation
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO products
                        (name, description, price, vendor, category, status,
                         ai_score, ai_decision, evaluated_at, created_ts)
                    VALUES (?, ?, ?, ?, ?, 'active', ?, ?, ?, ?)
                    """,
                    (
                        entry.name,
                        entry.description,
                        float(entry.price),
                        entry.vendor,
                        entry.category,
                        summary.score if summary else None,
                        summary.decision if summary else None,
                        summary.evaluated_at if summary else None,
                        now,
                    ),
                )
                conn.commit()
                product_id = cursor.lastrowid
            finally:
                conn.close()
            product = self.get(product_id)
        except sqlite3.Error as e:
            logger.exception(f"Failed to insert product {entry.name!r}")
            raise StoreError(f"Catalog insert failed: {e}") from e

        if product is None:
            raise StoreError(f"Inserted product {product_id} could not be read back")
        logger.info(f"Added product {product_id} ({entry.name}) to catalog")
        return product

    async def list_entries(self) -> list[dict[str, Any]]:
        try:
            conn = self._connect()
            try:
                cursor = conn.execute("SELECT * FROM products ORDER BY id ASC")
                return [_row_to_product(row) for row in cursor.fetchall()]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Catalog list failed: {e}") from e

    def get(self, product_id: int) -> dict[str, Any] | None:
        """Get a single product by ID."""
        conn = self._connect()
        try:
            cursor = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,))
            row = cursor.fetchone()
            return _row_to_product(row) if row else None
        finally:
            conn.close()

    def search(
        self,
        query: str | None = None,
        category: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        status: str | None = "active",
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[dict[str, Any]]:
        """
        Search products by text, category and price range.

        Args:
            query: Substring matched against name and description
            category: Substring matched against category
            min_price: Inclusive lower price bound
            max_price: Inclusive upper price bound
            status: Product status to keep; "all" disables the filter
            limit: Maximum rows to return

        Returns:
            Products ordered by name
        """
        clauses = ["1=1"]
        params: list[Any] = []

        if query:
            clauses.append("(name LIKE ? OR description LIKE ?)")
            params.extend([f"%{query}%", f"%{query}%"])
        if category:
            clauses.append("category LIKE ?")
            params.append(f"%{category}%")
        if min_price is not None:
            clauses.append("price >= ?")
            params.append(min_price)
        if max_price is not None:
            clauses.append("price <= ?")
            params.append(max_price)
        if status != "all":
            clauses.append("status = ?")
            params.append(status or "active")

        sql = f"SELECT * FROM products WHERE {' AND '.join(clauses)} ORDER BY name LIMIT ?"
        params.append(limit)

        conn = self._connect()
        try:
            cursor = conn.execute(sql, params)
            return [_row_to_product(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def categories(self) -> list[str]:
        """Distinct product categories, sorted."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                SELECT DISTINCT category FROM products
                WHERE category IS NOT NULL AND category != ''
                ORDER BY category
                """
            )
            return [row["category"] for row in cursor.fetchall()]
        finally:
            conn.close()

    def stats(self) -> dict[str, Any]:
        """Counts and price range over active products."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_products,
                    COUNT(DISTINCT category) AS total_categories,
                    MIN(price) AS min_price,
                    MAX(price) AS max_price,
                    AVG(price) AS avg_price
                FROM products
                WHERE status = 'active'
                """
            )
            return dict(cursor.fetchone())
        finally:
            conn.close()


class HttpCatalogStore(CatalogStore):
    """Catalog held by a separate service exposing /products."""

    name = "http"

    def __init__(self, api_base: str, timeout_seconds: float = 10.0):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout_seconds

    @property
    def products_url(self) -> str:
        return f"{self.api_base}/products"

    async def insert(self, entry: CatalogEntry) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    self.products_url,
                    json=entry.to_dict(),
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                logger.warning(f"Catalog service insert failed: {e}")
                raise StoreError(f"Catalog service error: {e}") from e
            except ValueError as e:
                raise StoreError("Catalog service returned invalid JSON") from e

        if not isinstance(data, dict) or not data.get("success"):
            raise StoreError("Catalog service did not accept the product")
        return data.get("product") or entry.to_dict()

    async def list_entries(self) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(self.products_url)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise StoreError(f"Catalog service error: {e}") from e
            except ValueError as e:
                raise StoreError("Catalog service returned invalid JSON") from e

        # The service may wrap the list or return it bare
        if isinstance(data, dict):
            data = data.get("products", [])
        if not isinstance(data, list):
            raise StoreError("Catalog service returned an unexpected product list")
        return data


def build_catalog_store(config: IntakeConfig) -> CatalogStore:
    """Create the catalog store selected in config."""
    store_config: CatalogStoreConfig = config.catalog
    if store_config.backend == "http":
        return HttpCatalogStore(store_config.api_base, store_config.timeout_seconds)
    if store_config.backend == "sqlite":
        return SQLiteCatalogStore(config.db_path)
    raise ValueError(f"Unknown catalog backend: {store_config.backend!r}")
