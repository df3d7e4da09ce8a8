"""
Concurrency-bounded batch geocoding.

Runs a fixed-size pool of asyncio workers over a row set. Workers pull row
indices from a shared queue, geocode the row, write the updated row back
into a pre-sized output list at the same index, then pause for a short
pacing interval before claiming the next index. Pacing per worker caps the
aggregate request rate at roughly ``concurrency / pacing_s`` without a
global rate limiter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..ingestion.models import JobRow
from .base import Geocoder
from .models import BatchSummary, GeocodeOutcome, GeocodeStatus, RowGeocodeStatus
from .normalizers import normalize_address

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_PACING_S = 0.12

ProgressCallback = Callable[[int, int], None]
AddressFn = Callable[[JobRow], str]


@dataclass
class BatchResult:
    """Rows in input order plus the pass's counters."""
    rows: List[JobRow] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)


def _apply_outcome(row: JobRow, outcome: GeocodeOutcome) -> JobRow:
    """
    Merge one geocode outcome into a row.

    Any attempt is terminal for this pass, so ``needs_geocode`` is cleared
    whether or not a match was found.
    """
    update = {"needs_geocode": False, "geocode_status": RowGeocodeStatus.for_outcome(outcome.status)}
    if outcome.is_success():
        result = outcome.result
        update["lat"] = result.lat
        update["lng"] = result.lng
        # Keep the row's own zip when the provider returned none
        update["zip"] = result.zip or row.zip
    return row.model_copy(update=update)


async def geocode_batch(
    rows: Sequence[JobRow],
    geocoder: Geocoder,
    address_of: Optional[AddressFn] = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    pacing_s: float = DEFAULT_PACING_S,
    on_progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """
    Geocode a row set with bounded concurrency.

    Args:
        rows: Rows to resolve; never mutated
        geocoder: Client used for each lookup
        address_of: Builds the raw address for a row (default: JobRow.geocode_address)
        concurrency: Worker pool size; the pool never exceeds the row count
        pacing_s: Pause a worker takes after each provider call
        on_progress: Called as ``(done, total)`` after every row, success or not

    Returns:
        BatchResult whose rows match the input order and length.
        Failures are counted in the summary, never raised.
    """
    address_of = address_of or JobRow.geocode_address
    total = len(rows)
    out: List[JobRow] = list(rows)
    summary = BatchSummary()

    if total == 0:
        return BatchResult(rows=out, summary=summary)

    queue: asyncio.Queue[int] = asyncio.Queue()
    for idx in range(total):
        queue.put_nowait(idx)

    done = 0

    def report() -> None:
        nonlocal done
        done += 1
        if on_progress is not None:
            try:
                on_progress(done, total)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def process(idx: int) -> bool:
        """Handle one row. Returns True when the provider was called."""
        row = out[idx]

        if row.has_coordinates:
            summary.skipped += 1
            return False

        try:
            address = normalize_address(address_of(row))
        except Exception as e:
            logger.warning(f"Could not build address for row {idx}: {e}")
            address = ""

        if not address:
            out[idx] = row.model_copy(update={
                "needs_geocode": False,
                "geocode_status": RowGeocodeStatus.FAILED.value,
            })
            summary.record(GeocodeStatus.INVALID_INPUT)
            return False

        try:
            outcome = await geocoder.geocode_detailed(address)
        except Exception as e:
            # Geocoders should not raise; a misbehaving one still must not sink the batch
            logger.error(f"Geocoder raised for row {idx} ({address!r}): {e}")
            outcome = GeocodeOutcome(address=address, status=GeocodeStatus.EXCEPTION, message=str(e)[:500])

        out[idx] = _apply_outcome(row, outcome)
        summary.record(outcome.status)
        if not outcome.is_success():
            logger.debug(f"No coordinates for row {idx}: {address!r} ({outcome.status.value})")
        return True

    async def worker() -> None:
        while True:
            try:
                idx = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            called = await process(idx)
            report()
            if called and pacing_s > 0:
                await asyncio.sleep(pacing_s)

    n_workers = max(1, min(int(concurrency), total))
    logger.info(f"Geocoding {total} rows with {n_workers} workers")
    await asyncio.gather(*(worker() for _ in range(n_workers)))

    logger.info(
        f"Geocoding complete: {summary.attempted} attempted, {summary.success} success, "
        f"{summary.failed} failed, {summary.skipped} skipped"
    )
    return BatchResult(rows=out, summary=summary)
