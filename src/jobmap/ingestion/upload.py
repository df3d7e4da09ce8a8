"""
Upload pipeline: validate, geocode, then persist a batch of raw rows.

Geocoding finishes for the whole batch before the single upsert, so the
two phases never interleave.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from ..geocoding.base import Geocoder, JobStore
from ..geocoding.batch import BatchResult, DEFAULT_CONCURRENCY, DEFAULT_PACING_S, ProgressCallback, geocode_batch
from ..settings import settings
from ..utils.pipeline_mixin import PipelineMixin
from .models import ImportReport, JobRow
from .validator import validate_rows

logger = logging.getLogger(__name__)

NO_VALID_ROWS = "No valid rows to insert"


@dataclass
class UploadBatch:
    """State handed from one pipeline step to the next."""
    rows: List[JobRow] = field(default_factory=list)
    report: ImportReport = field(default_factory=ImportReport)


class UploadPipeline(PipelineMixin):
    """
    Import raw spreadsheet rows into the job store.

    Usage:
        pipeline = UploadPipeline(DuckDBJobStore(), get_geocoder(), mapping=suggest_mapping(headers))
        report = pipeline.run(rows)
    """

    MODALITY = "upload"

    def __init__(
        self,
        store: JobStore,
        geocoder: Optional[Geocoder] = None,
        mapping: Optional[Mapping[str, str]] = None,
        geocode: bool = True,
        concurrency: int = DEFAULT_CONCURRENCY,
        pacing_s: float = DEFAULT_PACING_S,
        max_rows: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        progress: bool = True,
    ):
        self.store = store
        self.geocoder = geocoder
        self.mapping = dict(mapping or {})
        self.geocode = geocode and geocoder is not None
        self.concurrency = concurrency
        self.pacing_s = pacing_s
        self.max_rows = settings.max_import_rows if max_rows is None else max_rows
        self.on_progress = on_progress
        self.progress = progress

    def run(self, raw_rows: Iterable[Mapping[str, Any]]) -> ImportReport:
        """
        Run the whole import.

        Returns:
            ImportReport; per-row problems are in ``errors``, never raised

        Raises:
            PersistenceError: the store rejected the insert
        """
        batch: UploadBatch = self._execute_pipeline(progress=self.progress, raw_rows=list(raw_rows))
        return batch.report

    def _load_pipeline(self, raw_rows: list[Mapping[str, Any]]):
        pipeline = [
            ("Validate Rows", self.validate, {"raw_rows": raw_rows}),
        ]
        if self.geocode:
            pipeline.append(("Geocode Rows", self.geocode_rows, {}))
        pipeline.append(("Persist Rows", self.persist, {}))
        return pipeline

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def validate(self, raw_rows: list[Mapping[str, Any]]) -> UploadBatch:
        """Cap the row count, then validate each row independently."""
        truncated = max(0, len(raw_rows) - self.max_rows)
        if truncated:
            logger.warning(f"Upload has {len(raw_rows)} rows; only the first {self.max_rows} are imported")
            raw_rows = raw_rows[: self.max_rows]

        validation = validate_rows(raw_rows, self.mapping)
        report = ImportReport(total=validation.total, truncated=truncated, errors=list(validation.errors))
        return UploadBatch(rows=validation.rows, report=report)

    def geocode_rows(self, batch: UploadBatch) -> UploadBatch:
        """Resolve coordinates for the valid rows with the batch geocoder."""
        if not batch.rows:
            return batch
        result = asyncio.run(self._geocode_batch(batch.rows))
        batch.rows = result.rows
        batch.report.geocode = result.summary
        return batch

    async def _geocode_batch(self, rows: List[JobRow]) -> BatchResult:
        # The loop ends with asyncio.run, so its client is closed here
        try:
            return await geocode_batch(
                rows,
                self.geocoder,
                concurrency=self.concurrency,
                pacing_s=self.pacing_s,
                on_progress=self.on_progress,
            )
        finally:
            await self.geocoder.aclose()

    def persist(self, batch: UploadBatch) -> UploadBatch:
        """Upsert the valid rows once, skipping duplicates by fingerprint."""
        report = batch.report
        if not batch.rows:
            report.skipped = report.total
            if not report.errors:
                report.errors.append(NO_VALID_ROWS)
            return batch

        inserted = self.store.upsert(batch.rows, conflict_key="fingerprint")
        report.inserted = len(inserted)
        report.duplicates = len(batch.rows) - len(inserted)
        report.skipped = report.total - report.inserted
        logger.info(
            f"Imported {report.inserted} of {report.total} rows "
            f"({len(report.errors)} invalid, {report.duplicates} duplicates)"
        )
        return batch
