import hashlib
import sqlite3
import uuid
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .models import BatchReport, ItemSummary, VariantRecord


def variant_hash_key(item_id: str, key: Sequence[str]) -> str:
    m = hashlib.sha1()
    m.update("|".join([item_id, *key]).encode("utf-8"))
    return m.hexdigest()


class RunLedger:
    """Optional sqlite history of runs, items and per-variant observations."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _conn(self) -> sqlite3.Connection:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def ensure_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS runs (
                  run_id TEXT PRIMARY KEY,
                  started_at TEXT NOT NULL,
                  finished_at TEXT,
                  items_ok INTEGER,
                  items_failed INTEGER,
                  items_skipped INTEGER,
                  rows_written INTEGER
                );

                CREATE TABLE IF NOT EXISTS items (
                  run_id TEXT NOT NULL,
                  input_sku TEXT NOT NULL,
                  input_url TEXT NOT NULL,
                  item_id TEXT,
                  status TEXT NOT NULL,
                  combination_count INTEGER NOT NULL,
                  error TEXT,
                  extracted_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS variants (
                  hash_key TEXT PRIMARY KEY,
                  item_id TEXT NOT NULL,
                  selection TEXT NOT NULL,
                  variant_sku TEXT,
                  first_seen_at TEXT NOT NULL,
                  last_seen_at TEXT NOT NULL,
                  ever_purchasable INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS observations (
                  obs_id INTEGER PRIMARY KEY AUTOINCREMENT,
                  run_id TEXT NOT NULL,
                  hash_key TEXT NOT NULL,
                  crawl_ts TEXT NOT NULL,
                  purchasable INTEGER,
                  sale_value REAL,
                  list_value REAL,
                  currency TEXT,
                  error TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_obs_hash_ts ON observations(hash_key, crawl_ts);
                CREATE INDEX IF NOT EXISTS idx_items_run ON items(run_id);
                """
            )

    def begin_run(self, started_at_iso: str) -> str:
        run_id = str(uuid.uuid4())
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO runs(run_id, started_at) VALUES (?, ?)",
                (run_id, started_at_iso),
            )
        return run_id

    def finish_run(self, run_id: str, report: BatchReport) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                UPDATE runs SET finished_at = ?, items_ok = ?, items_failed = ?,
                  items_skipped = ?, rows_written = ?
                WHERE run_id = ?
                """,
                (
                    report.finished_at,
                    report.items_ok,
                    report.items_failed,
                    report.items_skipped,
                    report.rows_written,
                    run_id,
                ),
            )

    def record_item(
        self,
        run_id: str,
        summary: ItemSummary,
        records: Optional[Iterable[VariantRecord]] = None,
    ) -> None:
        """Write the item row and its variant observations in one transaction."""
        ts = summary.extracted_at
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO items(run_id, input_sku, input_url, item_id, status, combination_count, error, extracted_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    summary.input_sku,
                    summary.input_url,
                    summary.item_id,
                    summary.status,
                    summary.combination_count,
                    summary.error,
                    ts,
                ),
            )
            if not summary.item_id:
                return
            for r in records or []:
                key = r.combination.key
                hash_key = variant_hash_key(summary.item_id, key)
                purchasable = 1 if r.availability.purchasable else 0
                # Insert or refresh last_seen_at; first_seen_at only set on insert
                conn.execute(
                    """
                    INSERT INTO variants(hash_key, item_id, selection, variant_sku, first_seen_at, last_seen_at, ever_purchasable)
                    VALUES(?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(hash_key) DO UPDATE SET
                      variant_sku = COALESCE(excluded.variant_sku, variants.variant_sku),
                      last_seen_at = excluded.last_seen_at,
                      ever_purchasable = CASE WHEN excluded.ever_purchasable = 1 THEN 1 ELSE variants.ever_purchasable END
                    """,
                    (hash_key, summary.item_id, "|".join(key), r.variant_sku, ts, ts, purchasable),
                )
                conn.execute(
                    """
                    INSERT INTO observations(run_id, hash_key, crawl_ts, purchasable, sale_value, list_value, currency, error)
                    VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run_id,
                        hash_key,
                        ts,
                        None if r.availability.purchasable is None else purchasable,
                        r.price.sale_value,
                        r.price.list_value,
                        r.price.currency,
                        r.error,
                    ),
                )
