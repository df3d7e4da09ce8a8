"""
DuckDB storage backend for job rows.

Stores validated rows in a single ``jobs`` table keyed by id, with a unique
fingerprint used to skip duplicate uploads, and serves the queries the
reporting and geocode-run paths need.
"""


import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Optional, List, Any

import duckdb
import pandas as pd

from ..db.db import open_connection
from ..ingestion.models import JobRow
from ..utils.errors import PersistenceError
from .base import JobStore
from .models import RowGeocodeStatus


logger = logging.getLogger(__name__)

COLUMNS = [
    "id", "fingerprint", "name", "service_date", "price", "service_type", "lead_source",
    "street", "city", "state", "zip", "full_address", "lat", "lng",
    "needs_geocode", "geocode_status",
]

# Columns that may serve as the upsert conflict key
CONFLICT_KEYS = {"fingerprint", "id"}

# Rows still waiting for coordinates
_NEEDS_GEOCODE = "(lat IS NULL OR lng IS NULL OR needs_geocode)"
_NOT_FAILED = f"coalesce(geocode_status, '') <> '{RowGeocodeStatus.FAILED.value}'"


class DuckDBJobStore(JobStore):
    """
    DuckDB storage backend for job rows.

    Inserts are idempotent on the fingerprint: re-uploading the same file
    inserts nothing and reports every row as a duplicate.
    """

    DDL_JOBS = """
    CREATE TABLE IF NOT EXISTS jobs (
        id TEXT PRIMARY KEY,
        fingerprint TEXT UNIQUE,
        name TEXT NOT NULL,
        service_date DATE NOT NULL,
        price DOUBLE NOT NULL,
        service_type TEXT,
        lead_source TEXT,
        street TEXT,
        city TEXT,
        state TEXT,
        zip TEXT,
        full_address TEXT,
        lat DOUBLE,
        lng DOUBLE,
        needs_geocode BOOLEAN DEFAULT false,
        geocode_status TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize DuckDB storage.

        Args:
            db_path: Path to DuckDB database file (default: settings.ddb_path)
        """
        try:
            self.con = open_connection(db_path)
            self.con.execute(self.DDL_JOBS)
        except duckdb.Error as e:
            raise PersistenceError("open job store", e) from e
        self.db_path = db_path
        logger.info(f"Initialized DuckDB job store: {db_path or 'settings.ddb_path'}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, records: List[JobRow], conflict_key: str = "fingerprint") -> List[JobRow]:
        """
        Store records, skipping duplicates.

        Duplicates are rows whose conflict key already exists in the table or
        appears earlier in the same batch.

        Args:
            records: Validated rows
            conflict_key: Unique column identifying a duplicate

        Returns:
            The newly inserted rows, with ids assigned
        """
        if conflict_key not in CONFLICT_KEYS:
            raise ValueError(f"Unsupported conflict key '{conflict_key}'. Known keys: {sorted(CONFLICT_KEYS)}")
        if not records:
            return []

        prepared: List[JobRow] = []
        seen: set[str] = set()
        for record in records:
            row = record if record.id else record.model_copy(update={"id": uuid.uuid4().hex})
            key = row.fingerprint if conflict_key == "fingerprint" else row.id
            if key in seen:
                continue
            seen.add(key)
            prepared.append(row)

        try:
            self.con.execute("BEGIN TRANSACTION")
            existing = self._existing_keys(conflict_key, [self._key(r, conflict_key) for r in prepared])
            new_rows = [r for r in prepared if self._key(r, conflict_key) not in existing]
            if new_rows:
                # object dtype keeps None as NULL instead of NaN
                df = pd.DataFrame([self._to_params(r) for r in new_rows], columns=COLUMNS, dtype=object)
                self.con.register("batch_jobs", df)
                self.con.execute(
                    f"""
                    INSERT INTO jobs ({', '.join(COLUMNS)})
                    SELECT {', '.join(COLUMNS)} FROM batch_jobs
                    ON CONFLICT DO NOTHING
                    """
                )
                self.con.unregister("batch_jobs")
            self.con.execute("COMMIT")
        except duckdb.Error as e:
            self._rollback()
            raise PersistenceError("insert jobs", e) from e

        logger.info(f"Inserted {len(new_rows)} of {len(records)} jobs ({len(records) - len(new_rows)} duplicates)")
        return new_rows

    def update_geocode(self, job_id: str, lat: float, lng: float, zip_code: Optional[str]) -> None:
        """Store coordinates for one row and clear its geocode flag."""
        try:
            self.con.execute(
                """
                UPDATE jobs
                SET lat = ?, lng = ?, zip = coalesce(?, zip),
                    needs_geocode = false, geocode_status = ?
                WHERE id = ?
                """,
                [lat, lng, zip_code, RowGeocodeStatus.OK.value, job_id],
            )
        except duckdb.Error as e:
            raise PersistenceError(f"update job {job_id}", e) from e

    def mark_geocode_failed(self, job_id: str) -> None:
        """Record that a run could not resolve this row."""
        try:
            self.con.execute(
                "UPDATE jobs SET geocode_status = ? WHERE id = ?", [RowGeocodeStatus.FAILED.value, job_id]
            )
        except duckdb.Error as e:
            raise PersistenceError(f"update job {job_id}", e) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        min_price: Optional[float] = None,
    ) -> List[JobRow]:
        """
        Return stored rows, oldest service date first.

        Args:
            date_from: Inclusive lower bound on service_date
            date_to: Inclusive upper bound on service_date
            min_price: Inclusive lower bound on price
        """
        clauses: List[str] = []
        params: List[Any] = []
        if date_from is not None:
            clauses.append("service_date >= ?")
            params.append(date_from)
        if date_to is not None:
            clauses.append("service_date <= ?")
            params.append(date_to)
        if min_price is not None:
            clauses.append("price >= ?")
            params.append(min_price)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return self._query(f"SELECT {', '.join(COLUMNS)} FROM jobs {where} ORDER BY service_date, created_at", params)

    def select_needing_geocode(self, limit: int, include_failed: bool = False) -> List[JobRow]:
        """
        Return up to ``limit`` rows missing coordinates or flagged for geocoding.

        Rows a previous run already failed on are left out unless
        ``include_failed`` is set, so they cannot starve the queue.
        """
        where = _NEEDS_GEOCODE if include_failed else f"{_NEEDS_GEOCODE} AND {_NOT_FAILED}"
        return self._query(
            f"SELECT {', '.join(COLUMNS)} FROM jobs WHERE {where} ORDER BY created_at, id LIMIT ?",
            [int(limit)],
        )

    def count_needing_geocode(self, include_failed: bool = False) -> int:
        where = _NEEDS_GEOCODE if include_failed else f"{_NEEDS_GEOCODE} AND {_NOT_FAILED}"
        try:
            result = self.con.execute(f"SELECT COUNT(*) FROM jobs WHERE {where}").fetchone()
        except duckdb.Error as e:
            raise PersistenceError("count jobs", e) from e
        return result[0] if result else 0

    def get_summary(self) -> dict[str, int]:
        """Get summary statistics."""
        try:
            total, located = self.con.execute(
                "SELECT COUNT(*), COUNT(*) FILTER (WHERE lat IS NOT NULL AND lng IS NOT NULL) FROM jobs"
            ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError("summarize jobs", e) from e
        return {
            "total": total,
            "geocoded": located,
            "needing_geocode": self.count_needing_geocode(include_failed=True),
        }

    def close(self) -> None:
        """Close database connection."""
        if self.con:
            self.con.close()
            logger.info("Closed DuckDB connection")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _key(row: JobRow, conflict_key: str) -> str:
        return row.fingerprint if conflict_key == "fingerprint" else row.id

    def _existing_keys(self, conflict_key: str, keys: List[str]) -> set[str]:
        if not keys:
            return set()
        placeholders = ", ".join("?" for _ in keys)
        found = self.con.execute(
            f"SELECT {conflict_key} FROM jobs WHERE {conflict_key} IN ({placeholders})", keys
        ).fetchall()
        return {r[0] for r in found}

    @staticmethod
    def _to_params(row: JobRow) -> List[Any]:
        return [
            row.id, row.fingerprint, row.name, row.service_date, row.price,
            row.service_type, row.lead_source, row.street, row.city, row.state,
            row.zip, row.full_address, row.lat, row.lng,
            row.needs_geocode, row.geocode_status,
        ]

    def _query(self, sql: str, params: List[Any]) -> List[JobRow]:
        try:
            cursor = self.con.execute(sql, params)
            names = [d[0] for d in cursor.description]
            rows = cursor.fetchall()
        except duckdb.Error as e:
            raise PersistenceError("query jobs", e) from e

        out: List[JobRow] = []
        for values in rows:
            record = dict(zip(names, values))
            record.pop("fingerprint", None)
            record["needs_geocode"] = bool(record.get("needs_geocode"))
            out.append(JobRow.model_validate(record))
        return out

    def _rollback(self) -> None:
        try:
            self.con.execute("ROLLBACK")
        except duckdb.Error:
            # No open transaction to roll back
            pass
