"""PostgreSQL database connector."""
import json
import re
from typing import Any, Dict, List, Optional

import asyncpg

from geosearch.db.base import TimeWindow
from geosearch.errors import BackingStoreError
from geosearch.geo.bounds import GeoBound
from geosearch.logger import logger
from geosearch.models import SearchableEntity

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


class PostgresConnector:
    """Gère un pool de connexions asynchrone à PostgreSQL en utilisant l'URL."""

    def __init__(self, database_url: str, max_size: int = 10):
        self.database_url = database_url
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialise le pool de connexions avec l'URL et max_size."""
        self._pool = await asyncpg.create_pool(
            dsn=self.database_url,
            max_size=self.max_size
        )
        logger.info("Pool de connexions asyncpg initialisé (max_size={size}).", size=self.max_size)

    async def execute_query(self, sql: str, *args) -> List[Dict[str, Any]]:
        """Exécute une requête SQL avec des paramètres variables."""
        if not self._pool:
            raise ConnectionError("Connection pool not initialized. Call .connect() first.")

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
            return [dict(row) for row in rows]

    async def is_table_exist(self, table_name: str) -> bool:
        """Vérifie l'existence de la table."""
        sql = """SELECT EXISTS (SELECT 1 FROM pg_tables WHERE tablename = $1)"""
        if not self._pool:
            return False
        async with self._pool.acquire() as conn:
            return await conn.fetchval(sql, table_name.lower())

    async def close(self):
        """Ferme le pool de connexions proprement."""
        if self._pool:
            await self._pool.close()
            self._pool = None


class PostgresEntityStore:
    """
    Stockage des entités dans une table PostgreSQL.

    Colonnes attendues : id, latitude, longitude, geohash, start_time (timestamptz),
    payload (jsonb). Un index btree `(geohash COLLATE "C", id)` rend le scan de
    plage efficace.
    """

    def __init__(self, connector: PostgresConnector, table: str = "searchable_entities"):
        self.db = connector
        self.table = self._validate_table_name(table)

    def _validate_table_name(self, table: str) -> str:
        """
        Valide le nom de table, seul élément interpolé dans le SQL.

        Raises:
            ValueError: Si le nom n'est pas un identifiant simple
        """
        if not isinstance(table, str) or not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        return table

    def _build_scan_sql(self) -> str:
        # Safe: table name validated as a plain identifier
        return f"""
            SELECT id, latitude, longitude, geohash, start_time, payload
            FROM {self.table}
            WHERE geohash COLLATE "C" >= $1
              AND ($2::text IS NULL OR geohash COLLATE "C" < $2)
              AND ($3::timestamptz IS NULL OR start_time >= $3)
              AND ($4::timestamptz IS NULL OR start_time < $4)
            ORDER BY geohash COLLATE "C", id
            LIMIT $5
        """  # nosec B608

    @staticmethod
    def _row_to_entity(row: Dict[str, Any]) -> SearchableEntity:
        payload = row.get("payload") or {}
        if isinstance(payload, str):
            payload = json.loads(payload)
        return SearchableEntity(
            id=str(row["id"]),
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            geohash=row["geohash"],
            start_time=row["start_time"],
            payload=payload,
        )

    async def scan(
        self,
        bound: GeoBound,
        limit: int,
        window: Optional[TimeWindow] = None,
    ) -> List[SearchableEntity]:
        """Scan de plage ordonné ; la fenêtre temporelle est appliquée côté SQL."""
        window_start, window_end = window if window is not None else (None, None)
        try:
            rows = await self.db.execute_query(
                self._build_scan_sql(),
                bound.start,
                bound.end,
                window_start,
                window_end,
                limit,
            )
        except (asyncpg.PostgresError, OSError, ConnectionError) as e:
            raise BackingStoreError(
                f"PostgreSQL scan failed for [{bound.start}, {bound.end}): {e}", bound=bound
            ) from e

        return [self._row_to_entity(row) for row in rows]

    async def ping(self) -> None:
        try:
            await self.db.execute_query("SELECT 1")
        except (asyncpg.PostgresError, OSError, ConnectionError) as e:
            raise BackingStoreError(f"PostgreSQL unreachable: {e}") from e

    async def close(self) -> None:
        await self.db.close()
