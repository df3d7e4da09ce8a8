"""
Sequential geocode run over stored jobs.

The unattended counterpart of the batch geocoder: it pulls stored rows that
still lack coordinates, resolves them one at a time behind a rate gate, and
writes each result back to the store as it goes.
"""

import logging
from typing import Optional

from ..ingestion.models import JobRow
from ..utils.errors import GeocodingConfigError, PersistenceError
from .base import Geocoder, JobStore, RateLimiter
from .models import GeocodeStatus, GeocodingConfig, RunSummary
from .normalizers import normalize_address
from .throttling import IntervalGate

logger = logging.getLogger(__name__)


def run_address(job: JobRow) -> str:
    """Address for a stored row: the explicit parts, else the full address."""
    return job.parts_address() or (job.full_address or "").strip()


class GeocodeRunner:
    """
    Resolve stored rows that are missing coordinates, one lookup at a time.

    Usage:
        runner = GeocodeRunner(store, get_geocoder(), GeocodingConfig.from_settings())
        summary = runner.run(limit=50)
    """

    def __init__(
        self,
        store: JobStore,
        geocoder: Geocoder,
        config: GeocodingConfig,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.store = store
        self.geocoder = geocoder
        self.config = config
        self.rate_limiter = rate_limiter or IntervalGate.for_pacing(config.run_pacing_s)

    def check_config(self) -> None:
        """
        Fail fast, before any lookup, when the provider token is unusable.

        At least as strict as the per-call check, so a run never marks rows
        failed because of the token.
        """
        if not self.config.is_configured():
            msg = "No geocoding API keys configured. Please set MAPBOX_TOKEN in environment variables."
        else:
            msg = self.config.token_problem()
        if msg:
            logger.error(f"[geocode-run] {msg}")
            raise GeocodingConfigError(msg)

    def run(self, limit: Optional[int] = None, include_failed: bool = False) -> RunSummary:
        """
        Geocode up to ``limit`` stored rows.

        Args:
            limit: Rows to pull (default and bounds from config)
            include_failed: Also retry rows an earlier run failed on

        Returns:
            RunSummary with attempted/success/failed counts and the rows still remaining

        Raises:
            GeocodingConfigError: token missing, a placeholder or malformed
            PersistenceError: the store could not be read; a failed
                per-row update is counted as a failure instead
        """
        self.check_config()
        limit = self.config.clamp_limit(limit)
        logger.info(f"[geocode-run] start (limit={limit})")

        jobs = self.store.select_needing_geocode(limit, include_failed=include_failed)
        if not jobs:
            return RunSummary()

        summary = RunSummary(attempted=len(jobs))
        for job in jobs:
            address = normalize_address(run_address(job))
            if not address:
                logger.warning(f"[geocode-run] empty address for job {job.id}")
                self.store.mark_geocode_failed(job.id)
                summary.failed += 1
                continue

            self.rate_limiter.wait()
            outcome = self.geocoder.lookup_detailed(address)
            if outcome.is_success():
                result = outcome.result
                try:
                    self.store.update_geocode(job.id, result.lat, result.lng, result.zip or job.zip)
                except PersistenceError as e:
                    logger.error(f"[geocode-run] update error for {job.id}: {e}")
                    summary.failed += 1
                    continue
                summary.success += 1
            elif outcome.status == GeocodeStatus.CONFIG_ERROR:
                # Left pending so a run with a working token picks it up
                logger.error(f"[geocode-run] token rejected for {job.id}: {outcome.message}")
                summary.failed += 1
            else:
                logger.warning(f"[geocode-run] no coords for {job.id} {address}")
                self.store.mark_geocode_failed(job.id)
                summary.failed += 1

        summary.remaining = self.store.count_needing_geocode(include_failed=include_failed)
        logger.info(f"[geocode-run] done {summary.to_dict()}")
        return summary
