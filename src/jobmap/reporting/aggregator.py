"""
Per-ZIP job and revenue metrics.

Metrics are recomputed from the current record set on every call and never
stored. Records whose date cannot be read are kept by the date filter;
records without a usable ZIP are left out of every figure.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from ..ingestion.models import JobRow
from ..ingestion.validator import parse_service_date

logger = logging.getLogger(__name__)

_RE_ZIP_DIGITS = re.compile(r"\d{1,5}")

# API names -> ZipMetric attributes
SORT_FIELDS = {
    "zip": "zip",
    "jobs": "jobs",
    "sales": "sales",
    "avg": "avg",
    "jobShare": "job_share",
    "revenueShare": "revenue_share",
    "avgDeltaPct": "avg_delta_pct",
}


def normalize_zip(value: Any) -> str:
    """First run of up to five digits, left-padded to five; "" when there is none."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    match = _RE_ZIP_DIGITS.search(str(value))
    return match.group(0).zfill(5) if match else ""


def round1(value: float) -> float:
    """Round to one decimal, halves rounding up."""
    return math.floor(value * 10 + 0.5) / 10


def _pct(numerator: float, denominator: float) -> float:
    if not denominator or denominator <= 0:
        return 0.0
    return numerator / denominator * 100


def _clean_price(value: Any) -> float:
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    return price if math.isfinite(price) else 0.0


@dataclass(frozen=True)
class DateRange:
    """Inclusive service-date window; an open end is None."""
    start: Optional[date] = None
    end: Optional[date] = None

    def admits(self, value: Any) -> bool:
        """Whether a raw service date falls in the window; unreadable dates pass."""
        day = parse_service_date(value)
        if day is None:
            return True
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


@dataclass(frozen=True)
class ZipMetric:
    zip: str
    jobs: int
    sales: float
    avg: float
    job_share: float
    revenue_share: float
    avg_delta_pct: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "zip": self.zip,
            "jobs": self.jobs,
            "sales": self.sales,
            "avg": self.avg,
            "jobShare": self.job_share,
            "revenueShare": self.revenue_share,
            "avgDeltaPct": self.avg_delta_pct,
        }


@dataclass
class AggregateReport:
    per_zip: dict[str, ZipMetric] = field(default_factory=dict)
    total_jobs: int = 0
    total_sales: float = 0.0

    @property
    def overall_avg(self) -> float:
        return self.total_sales / self.total_jobs if self.total_jobs > 0 else 0.0

    @property
    def totals(self) -> dict[str, Any]:
        return {
            "totalZips": len(self.per_zip),
            "totalJobs": self.total_jobs,
            "totalSales": self.total_sales,
            "overallAvg": self.overall_avg,
        }


def _to_frame(records: Iterable[JobRow | Mapping[str, Any]]) -> pd.DataFrame:
    rows = []
    for record in records:
        data = record.to_record() if isinstance(record, JobRow) else dict(record)
        rows.append({
            "zip": data.get("zip"),
            "price": data.get("price"),
            "service_date": data.get("service_date"),
        })
    return pd.DataFrame(rows, columns=["zip", "price", "service_date"])


def aggregate(
    records: Iterable[JobRow | Mapping[str, Any]],
    date_range: Optional[DateRange] = None,
    min_price: Optional[float] = None,
) -> AggregateReport:
    """
    Aggregate records into per-ZIP metrics.

    Args:
        records: JobRow objects or plain dicts with ``zip``, ``price`` and ``service_date``
        date_range: Inclusive window on service_date; unreadable dates pass
        min_price: Inclusive lower bound on the cleaned price

    Returns:
        AggregateReport keyed by 5-digit ZIP, with totals over the grouped records
    """
    df = _to_frame(records)
    if df.empty:
        return AggregateReport()

    df["price"] = df["price"].map(_clean_price)
    df["zip"] = df["zip"].map(normalize_zip)

    if date_range is not None and (date_range.start or date_range.end):
        # Each value parsed on its own: uploads mix date formats
        df = df[df["service_date"].map(date_range.admits).astype(bool)]

    if min_price is not None:
        df = df[df["price"] >= min_price]

    dropped = int((df["zip"] == "").sum())
    if dropped:
        logger.debug(f"{dropped} records without a ZIP left out of aggregation")
    df = df[df["zip"] != ""]
    if df.empty:
        return AggregateReport()

    grouped = df.groupby("zip", sort=True)["price"].agg(["count", "sum"])
    total_jobs = int(grouped["count"].sum())
    total_sales = float(grouped["sum"].sum())
    overall_avg = total_sales / total_jobs if total_jobs > 0 else 0.0

    per_zip: dict[str, ZipMetric] = {}
    for zip_code, stats in grouped.iterrows():
        jobs = int(stats["count"])
        sales = float(stats["sum"])
        avg = sales / jobs if jobs > 0 else 0.0
        per_zip[zip_code] = ZipMetric(
            zip=zip_code,
            jobs=jobs,
            sales=sales,
            avg=avg,
            job_share=round1(_pct(jobs, total_jobs)),
            revenue_share=round1(_pct(sales, total_sales)),
            avg_delta_pct=round1((avg - overall_avg) / overall_avg * 100) if overall_avg > 0 else 0.0,
        )

    return AggregateReport(per_zip=per_zip, total_jobs=total_jobs, total_sales=total_sales)


def rank_zips(
    report: AggregateReport,
    sort_field: str = "jobs",
    direction: str = "desc",
    zip_filter: Optional[str] = None,
) -> list[ZipMetric]:
    """
    Order ZIP metrics for display.

    Ties on the sort field break by sales (descending), then ZIP (ascending).

    Args:
        sort_field: One of zip, jobs, sales, avg, jobShare, revenueShare, avgDeltaPct
        direction: "asc" or "desc"
        zip_filter: Keep only ZIPs containing this text
    """
    attr = SORT_FIELDS.get(sort_field)
    if attr is None:
        raise ValueError(f"Unknown sort field '{sort_field}'. Known fields: {sorted(SORT_FIELDS)}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction '{direction}'")

    metrics = list(report.per_zip.values())
    if zip_filter and zip_filter.strip():
        needle = zip_filter.strip().lower()
        metrics = [m for m in metrics if needle in m.zip.lower()]

    # Stable sorts, least significant key first
    metrics.sort(key=lambda m: m.zip)
    metrics.sort(key=lambda m: m.sales, reverse=True)
    metrics.sort(key=lambda m: getattr(m, attr), reverse=(direction == "desc"))
    return metrics
