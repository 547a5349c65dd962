import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from portfolio_engine.data.symbols import normalize_symbol
from portfolio_engine.models.market import Quote, SecurityEnrichment

logger = logging.getLogger(__name__)

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS security_enrichment (
    symbol TEXT PRIMARY KEY COLLATE NOCASE,
    name TEXT NOT NULL,
    short_name TEXT,
    sector TEXT NOT NULL,
    asset_type TEXT NOT NULL DEFAULT 'stock',
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

DEFAULT_DB_PATH = Path("data") / "enrichment.db"


def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


class EnrichmentStore:
    """SQLite table of local name/sector overrides keyed by normalized symbol."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        return self._conn

    def _init_schema(self) -> None:
        cursor = self.conn.executescript(SCHEMA_SQL)
        cursor.close()
        self.conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def upsert(self, enrichment: SecurityEnrichment) -> SecurityEnrichment:
        symbol = normalize_symbol(enrichment.symbol)
        updated_at = _now()
        self.conn.execute(
            """INSERT INTO security_enrichment
            (symbol, name, short_name, sector, asset_type, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(symbol) DO UPDATE SET
                name = excluded.name,
                short_name = excluded.short_name,
                sector = excluded.sector,
                asset_type = excluded.asset_type,
                updated_at = excluded.updated_at""",
            (
                symbol,
                enrichment.name,
                enrichment.short_name,
                enrichment.sector,
                enrichment.asset_type,
                updated_at,
            ),
        )
        self.conn.commit()
        return enrichment.model_copy(update={"symbol": symbol, "updated_at": updated_at})

    def get(self, symbol: str) -> SecurityEnrichment | None:
        try:
            row = self.conn.execute(
                "SELECT * FROM security_enrichment WHERE symbol = ?",
                (normalize_symbol(symbol),),
            ).fetchone()
        except sqlite3.Error:
            logger.warning("Enrichment lookup failed for %s", symbol)
            return None
        return SecurityEnrichment(**dict(row)) if row else None

    def get_many(self, symbols: list[str]) -> dict[str, SecurityEnrichment]:
        if not symbols:
            return {}
        normalized = [normalize_symbol(s) for s in symbols]
        placeholders = ", ".join("?" for _ in normalized)
        try:
            rows = self.conn.execute(
                f"SELECT * FROM security_enrichment WHERE symbol IN ({placeholders})",
                normalized,
            ).fetchall()
        except sqlite3.Error:
            logger.warning("Batch enrichment lookup failed")
            return {}
        return {r["symbol"].upper(): SecurityEnrichment(**dict(r)) for r in rows}

    def search_name(self, query: str, limit: int = 20) -> list[SecurityEnrichment]:
        rows = self.conn.execute(
            "SELECT * FROM security_enrichment WHERE name LIKE ? "
            "OR short_name LIKE ? ORDER BY symbol LIMIT ?",
            (f"%{query}%", f"%{query}%", limit),
        ).fetchall()
        return [SecurityEnrichment(**dict(r)) for r in rows]


def apply_enrichment(
    quote: Quote, enrichment: SecurityEnrichment | None
) -> tuple[Quote, bool]:
    if enrichment is None:
        return quote, False
    return (
        quote.model_copy(update={"name": enrichment.name, "sector": enrichment.sector}),
        True,
    )
