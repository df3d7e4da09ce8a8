from .aggregator import (
    DateRange,
    ZipMetric,
    AggregateReport,
    aggregate,
    rank_zips,
    normalize_zip,
    round1,
)

__all__ = [
    "DateRange",
    "ZipMetric",
    "AggregateReport",
    "aggregate",
    "rank_zips",
    "normalize_zip",
    "round1",
]
