from __future__ import annotations

"""
Merge extraction results into a patient record.

Two policies, deliberately kept as separate functions:
- `reconcile`: analyzer output wins over what the record holds, unless it is
  empty or "N/A".
- `merge_heuristic`: rule-based output only fills fields the record leaves empty.
"""

from typing import Optional

from ..internal_core.contracts import (
    EXTRACTED_FIELDS,
    FIELD_LABELS,
    NO_DATA_SENTINEL,
    ExtractionResult,
    PatientRecord,
)


def has_information(value: Optional[str]) -> bool:
    if value is None:
        return False
    text = value.strip()
    return bool(text) and text.upper() != NO_DATA_SENTINEL


def normalize_extraction(result: ExtractionResult) -> ExtractionResult:
    """Replace "N/A" and blank values with empty strings; absent fields stay absent."""
    updates: dict[str, str] = {}
    for name in ExtractionResult.model_fields:
        value = getattr(result, name)
        if value is None:
            continue
        updates[name] = value.strip() if has_information(value) else ""
    return result.model_copy(update=updates)


def reconcile(current: PatientRecord, incoming: ExtractionResult) -> PatientRecord:
    updates: dict[str, str] = {}
    for name in EXTRACTED_FIELDS:
        value = getattr(incoming, name)
        if has_information(value):
            updates[name] = value.strip()
    if not updates:
        return current.model_copy()
    return current.model_copy(update=updates)


def merge_heuristic(existing: PatientRecord, parsed: ExtractionResult) -> PatientRecord:
    updates: dict[str, str] = {}
    for name in EXTRACTED_FIELDS:
        if getattr(existing, name):
            continue
        value = getattr(parsed, name)
        if value:
            updates[name] = value
    if not updates:
        return existing.model_copy()
    return existing.model_copy(update=updates)


def filled_field_labels(result: ExtractionResult) -> list[str]:
    return [FIELD_LABELS[name] for name in EXTRACTED_FIELDS if has_information(getattr(result, name))]
