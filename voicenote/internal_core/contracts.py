from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

RecordingState = Literal["idle", "recording", "paused"]

NoticeLevel = Literal["info", "warning", "error"]

NO_DATA_SENTINEL = "N/A"

IDENTITY_FIELDS: tuple[str, ...] = ("patient_name", "age", "gender")
NARRATIVE_FIELDS: tuple[str, ...] = (
    "symptoms",
    "medical_history",
    "diagnosis",
    "treatment_plan",
)
VITAL_FIELDS: tuple[str, ...] = (
    "blood_pressure",
    "heart_rate",
    "temperature",
    "respiratory_rate",
    "oxygen_saturation",
    "weight",
    "height",
)
TRANSCRIPT_FIELDS: tuple[str, ...] = ("transcript", "formatted_transcript")

# Fields an extraction pass may populate on a patient record.
EXTRACTED_FIELDS: tuple[str, ...] = IDENTITY_FIELDS + NARRATIVE_FIELDS + VITAL_FIELDS

# Everything a clinician can edit directly in the note view.
EDITABLE_FIELDS: tuple[str, ...] = EXTRACTED_FIELDS + TRANSCRIPT_FIELDS

FIELD_LABELS: dict[str, str] = {
    "patient_name": "name",
    "age": "age",
    "gender": "gender",
    "symptoms": "symptoms",
    "medical_history": "medical history",
    "diagnosis": "diagnosis",
    "treatment_plan": "treatment plan",
    "blood_pressure": "blood pressure",
    "heart_rate": "heart rate",
    "temperature": "temperature",
    "respiratory_rate": "respiratory rate",
    "oxygen_saturation": "oxygen saturation",
    "weight": "weight",
    "height": "height",
}


class PatientRecord(BaseModel):
    """Structured patient note as kept in the edit view and the record store."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = ""
    created_at: str = ""

    patient_name: str = ""
    age: str = ""
    gender: str = ""

    symptoms: str = ""
    medical_history: str = ""
    diagnosis: str = ""
    treatment_plan: str = ""

    blood_pressure: str = ""
    heart_rate: str = ""
    temperature: str = ""
    respiratory_rate: str = ""
    oxygen_saturation: str = ""
    weight: str = ""
    height: str = ""

    transcript: str = ""
    formatted_transcript: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def editable_fields(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in EDITABLE_FIELDS}


class ExtractionResult(BaseModel):
    """
    One analysis pass's opinion about a transcript.

    `None` means the pass did not mention the field at all; the analyzer may also
    report "N/A" for fields it looked for but could not find.
    """

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    patient_name: Optional[str] = None
    age: Optional[str] = None
    gender: Optional[str] = None

    symptoms: Optional[str] = None
    medical_history: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None

    blood_pressure: Optional[str] = None
    heart_rate: Optional[str] = None
    temperature: Optional[str] = None
    respiratory_rate: Optional[str] = None
    oxygen_saturation: Optional[str] = None
    weight: Optional[str] = None
    height: Optional[str] = None

    formatted_transcript: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalar_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, list):
            return ", ".join(str(item) for item in value if item is not None)
        return value


class AnalysisResponse(BaseModel):
    success: bool
    data: Optional[ExtractionResult] = None
    error: Optional[str] = None


class Notice(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    level: NoticeLevel = "info"
    title: str
    description: str = ""


class SessionSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    state: RecordingState
    live_transcript: str = ""
    committed_text: str = ""
    interim_text: str = ""
    supported: bool = True
    error: Optional[str] = None
    can_start: bool = True
    can_pause_resume: bool = False
    can_stop: bool = False
    pending_analysis: bool = False
    restarts: int = 0


class NoteView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    record: PatientRecord
    transcript: str = ""
    has_unsaved_data: bool = False
    recording: SessionSnapshot
    notices: List[Notice] = Field(default_factory=list)
