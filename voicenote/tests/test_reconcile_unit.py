from voicenote.analysis.reconcile import (
    filled_field_labels,
    has_information,
    merge_heuristic,
    normalize_extraction,
    reconcile,
)
from voicenote.internal_core.contracts import ExtractionResult, PatientRecord


def test_has_information_rejects_blank_and_sentinel() -> None:
    assert has_information("Jane") is True
    assert has_information(None) is False
    assert has_information("   ") is False
    assert has_information("N/A") is False
    assert has_information(" n/a ") is False


def test_reconcile_incoming_wins_unless_empty_or_sentinel() -> None:
    current = PatientRecord(patient_name="Jane", age="40", symptoms="cough", transcript="raw")
    incoming = ExtractionResult(patient_name="Jane Doe", age="N/A", symptoms="", diagnosis=" flu ")

    merged = reconcile(current, incoming)

    assert merged.patient_name == "Jane Doe"
    assert merged.age == "40"
    assert merged.symptoms == "cough"
    assert merged.diagnosis == "flu"
    assert merged.transcript == "raw"
    assert current.patient_name == "Jane"


def test_reconcile_is_idempotent() -> None:
    current = PatientRecord(gender="Female")
    incoming = ExtractionResult(patient_name="Jane", heart_rate="72 bpm", weight="N/A")

    once = reconcile(current, incoming)
    twice = reconcile(once, incoming)

    assert once == twice


def test_normalize_extraction_blanks_sentinel_but_keeps_absent() -> None:
    normalized = normalize_extraction(
        ExtractionResult(patient_name="N/A", age=" 34 ", formatted_transcript="Patient: hi")
    )

    assert normalized.patient_name == ""
    assert normalized.age == "34"
    assert normalized.gender is None
    assert normalized.formatted_transcript == "Patient: hi"


def test_merge_heuristic_only_fills_empty_fields() -> None:
    existing = PatientRecord(patient_name="Dr. typed name", symptoms="")
    parsed = ExtractionResult(patient_name="Parsed Name", symptoms="headache", age="34")

    merged = merge_heuristic(existing, parsed)

    assert merged.patient_name == "Dr. typed name"
    assert merged.symptoms == "headache"
    assert merged.age == "34"


def test_filled_field_labels_are_human_readable() -> None:
    labels = filled_field_labels(
        ExtractionResult(patient_name="Jane", medical_history="asthma", blood_pressure="N/A")
    )
    assert labels == ["name", "medical history"]


def test_extraction_result_accepts_camel_case_and_scalars() -> None:
    result = ExtractionResult.model_validate(
        {"patientName": "Jane", "age": 34, "symptoms": ["cough", "fever"], "unknownKey": "x"}
    )
    assert result.patient_name == "Jane"
    assert result.age == "34"
    assert result.symptoms == "cough, fever"
