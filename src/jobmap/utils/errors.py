from typing import Any


class JobmapError(Exception):
    """Base exception for jobmap."""


class DataValidationError(JobmapError):
    def __init__(self, source: str, errors: list[str], original: Exception | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        msg = f"Validation failed for {len(errors)} records from source '{source}'"

        super().__init__(msg)

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        lines = [f"- {err}" for err in self.errors[:limit]]
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)


class GeocodingConfigError(JobmapError):
    """Geocoding provider token is missing or unusable."""


class PersistenceError(JobmapError):
    def __init__(self, operation: str, original: Any = None):
        self.operation = operation
        self.original = original
        detail = f": {original}" if original is not None else ""
        super().__init__(f"{operation} failed{detail}")
