"""
- Models: Job record schema and import reports
- Mapping: Spreadsheet header to schema field mapping
- Validator: Per-row validation and coercion
- Upload: Validate -> geocode -> persist pipeline (import from jobmap.ingestion.upload)
"""

from .models import (
    JobRow,
    RowValidation,
    ValidationReport,
    ImportReport,
)

from .mapping import (
    SCHEMA_FIELDS,
    HEADER_SUGGESTIONS,
    suggest_mapping,
    missing_mappings,
    is_full_address_header,
    apply_mapping,
)

from .validator import (
    validate_row,
    validate_rows,
)

__all__ = [
    # Models
    "JobRow",
    "RowValidation",
    "ValidationReport",
    "ImportReport",
    # Mapping
    "SCHEMA_FIELDS",
    "HEADER_SUGGESTIONS",
    "suggest_mapping",
    "missing_mappings",
    "is_full_address_header",
    "apply_mapping",
    # Validator
    "validate_row",
    "validate_rows",
]
