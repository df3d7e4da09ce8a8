"""FastAPI application for geocoding, geocode runs, imports and ZIP metrics.

Routes:
    GET/POST /api/geocode-address   Geocode one address
    POST     /api/geocode-run       Geocode stored jobs missing coordinates
    POST     /api/import-jobs       Validate and store raw rows
    GET      /api/zip-metrics       Per-ZIP job and revenue metrics
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .geocoding.base import Geocoder, JobStore
from .geocoding.geocoders import get_geocoder
from .geocoding.models import GeocodingConfig, RunSummary
from .geocoding.normalizers import normalize_address
from .geocoding.runner import GeocodeRunner
from .geocoding.storage import DuckDBJobStore
from .ingestion.models import ImportReport
from .ingestion.upload import UploadPipeline
from .reporting.aggregator import DateRange, aggregate, rank_zips
from .settings import settings
from .utils.errors import GeocodingConfigError, PersistenceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


# ============================================================================
# Dependencies
# ============================================================================


def get_job_store() -> Iterator[JobStore]:
    """One store per request, closed afterwards."""
    store = DuckDBJobStore(settings.ddb_path)
    try:
        yield store
    finally:
        store.close()


def get_geocoding_config() -> GeocodingConfig:
    return GeocodingConfig.from_settings()


# ============================================================================
# Request Models
# ============================================================================


class GeocodeAddressRequest(BaseModel):
    address: str = ""


class GeocodeRunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, description="Rows to process, clamped to [1, 500]")
    include_failed: bool = False


def _run_error(message: str, status_code: int) -> JSONResponse:
    body = {**RunSummary().to_dict(), "error": message}
    return JSONResponse(body, status_code=status_code)


# ============================================================================
# Geocoding
# ============================================================================


async def _geocode(address_raw: str, geocoder: Geocoder) -> Any:
    if not address_raw or not address_raw.strip():
        return JSONResponse({"error": "Missing address"}, status_code=400)

    address = normalize_address(address_raw)
    logger.info(f"[geocode-address] q: {address}")

    try:
        result = await geocoder.geocode_once(address)
    except Exception as e:
        logger.error(f"[geocode-address] error: {e}")
        return JSONResponse({"error": str(e) or "Internal error"}, status_code=500)

    if result is None:
        return JSONResponse({"error": "No geocode match", "address": address}, status_code=422)
    return result.to_dict()


@router.get("/geocode-address")
async def geocode_address_get(
    q: str = Query(default=""),
    geocoder: Geocoder = Depends(get_geocoder),
):
    return await _geocode(q, geocoder)


@router.post("/geocode-address")
async def geocode_address_post(
    body: Optional[GeocodeAddressRequest] = None,
    geocoder: Geocoder = Depends(get_geocoder),
):
    return await _geocode(body.address if body else "", geocoder)


@router.post("/geocode-run")
def geocode_run(
    body: Optional[GeocodeRunRequest] = None,
    store: JobStore = Depends(get_job_store),
    geocoder: Geocoder = Depends(get_geocoder),
    config: GeocodingConfig = Depends(get_geocoding_config),
):
    body = body or GeocodeRunRequest()
    runner = GeocodeRunner(store, geocoder, config)
    try:
        summary = runner.run(limit=body.limit, include_failed=body.include_failed)
    except GeocodingConfigError as e:
        return _run_error(str(e), 400)
    except PersistenceError as e:
        logger.error(f"[geocode-run] {e}")
        return _run_error(f"Database error: {e}", 500)
    return summary.to_dict()


# ============================================================================
# Import
# ============================================================================


@router.post("/import-jobs")
def import_jobs(
    payload: Optional[dict[str, Any]] = Body(default=None),
    store: JobStore = Depends(get_job_store),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """
    Validate and store raw rows.

    Body: ``{"rows": [...], "column_mapping": {...}?, "geocode": false?}``.
    Rows left without coordinates are picked up by a later geocode run.
    """
    rows = (payload or {}).get("rows")
    if not isinstance(rows, list):
        return JSONResponse({"error": "Invalid request: rows must be an array"}, status_code=400)

    mapping = payload.get("column_mapping")
    if mapping is not None and not isinstance(mapping, dict):
        return JSONResponse({"error": "Invalid request: column_mapping must be an object"}, status_code=400)

    pipeline = UploadPipeline(
        store,
        geocoder,
        mapping=mapping,
        geocode=bool(payload.get("geocode", False)),
        progress=False,
    )
    try:
        report = pipeline.run(rows)
    except PersistenceError as e:
        logger.error(f"[import-jobs] {e}")
        failed = ImportReport(total=len(rows), skipped=len(rows), errors=[f"Database error: {e}"])
        return JSONResponse(failed.to_dict(), status_code=500)
    return report.to_dict()


# ============================================================================
# Reporting
# ============================================================================


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid '{name}' date: {value!r} (expected YYYY-MM-DD)") from None


@router.get("/zip-metrics")
def zip_metrics(
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    sort: str = Query(default="jobs"),
    direction: str = Query(default="desc"),
    zip_filter: Optional[str] = Query(default=None, alias="zip"),
    store: JobStore = Depends(get_job_store),
):
    try:
        date_range = DateRange(_parse_date(date_from, "from"), _parse_date(date_to, "to"))
        records = store.select(min_price=min_price)
        report = aggregate(records, date_range=date_range)
        ranked = rank_zips(report, sort_field=sort, direction=direction, zip_filter=zip_filter)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except PersistenceError as e:
        logger.error(f"[zip-metrics] {e}")
        return JSONResponse({"error": f"Database error: {e}"}, status_code=500)

    return {
        "metrics": {z: m.to_dict() for z, m in report.per_zip.items()},
        "ranked": [m.to_dict() for m in ranked],
        "totals": report.totals,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield

    # Shutdown: only close the geocoder if a request built it
    if get_geocoder.cache_info().currsize:
        geocoder = get_geocoder()
        await geocoder.aclose()
        geocoder.close()


app = FastAPI(title="jobmap", lifespan=lifespan)
app.include_router(router)
