from __future__ import annotations

"""
Patient note workflow around one recording session.

Design intent:
- Hold the record shown in the edit view and apply extraction results to it.
- Catch every collaborator failure at this boundary and report it as a notice.
- Keep the edit view intact when persistence fails so saving can be retried.
"""

import asyncio
import logging
from typing import Any, Mapping, Optional

from ..analysis.analyzer import TranscriptAnalyzer
from ..analysis.heuristics import extract_heuristics
from ..analysis.reconcile import filled_field_labels, merge_heuristic, normalize_extraction, reconcile
from ..internal_core.contracts import (
    EDITABLE_FIELDS,
    AnalysisResponse,
    ExtractionResult,
    NoteView,
    PatientRecord,
)
from ..internal_core.notices import NoticeLog
from ..internal_core.record_store import RecordStore, RecordStoreError
from ..recording.base import RecognitionError, RecordingError, TranscriptionSource
from ..recording.session import RecordingSession

logger = logging.getLogger(__name__)


class NoteWorkflow:
    def __init__(
        self,
        store: RecordStore,
        source: TranscriptionSource,
        *,
        analyzer: Optional[TranscriptAnalyzer] = None,
        language: str = "en-US",
        restart_delay_sec: float = 0.1,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self.notices = NoticeLog()
        self.record = PatientRecord()
        self.transcript = ""
        self.session = RecordingSession(
            source,
            analyze=self._analyze if analyzer is not None else None,
            language=language,
            restart_delay_sec=restart_delay_sec,
            on_transcript_update=self._on_transcript_update,
            on_segment_analyzed=self._on_segment_analyzed,
            on_error=self._on_recognition_error,
        )

    @property
    def analyzer_enabled(self) -> bool:
        return self._analyzer is not None

    def has_unsaved_data(self) -> bool:
        record = self.record
        return any(
            value.strip()
            for value in (
                record.patient_name,
                record.symptoms,
                record.diagnosis,
                record.treatment_plan,
                self.transcript,
            )
        )

    def view(self, *, drain_notices: bool = True) -> NoteView:
        return NoteView(
            record=self.record,
            transcript=self.transcript,
            has_unsaved_data=self.has_unsaved_data(),
            recording=self.session.snapshot(),
            notices=self.notices.drain() if drain_notices else self.notices.items(),
        )

    # --------------------
    # RECORDING
    # --------------------

    async def start_recording(self) -> bool:
        try:
            return await self.session.start()
        except RecordingError as exc:
            self.notices.push("Recording unavailable", exc.message, level="error")
            return False

    def pause_recording(self) -> Optional[asyncio.Task]:
        return self.session.pause()

    async def resume_recording(self) -> bool:
        try:
            return await self.session.resume()
        except RecordingError as exc:
            self.notices.push("Could not resume recording", exc.message, level="error")
            return False

    async def stop_recording(self) -> Optional[PatientRecord]:
        final = self.session.stop()
        if final is None:
            return None
        return await self.complete_recording(final)

    async def complete_recording(self, final_transcript: str) -> PatientRecord:
        self.transcript = final_transcript
        if not final_transcript.strip():
            return self.record

        if self._analyzer is None:
            return self._complete_with_heuristics(final_transcript)

        self.notices.push("Analyzing transcript", "Using AI to extract patient information...")
        response = await self._analyze(final_transcript)
        if not response.success or response.data is None:
            logger.warning("stop-time analysis failed: %s", response.error)
            self.record = self.record.model_copy(update={"transcript": final_transcript})
            self.notices.push(
                "Analysis failed",
                "Could not analyze transcript with AI. Transcript saved for manual entry.",
                level="warning",
            )
            return self.record

        extracted = normalize_extraction(response.data)
        updated = self.record.model_copy(
            update={
                "transcript": final_transcript,
                "formatted_transcript": extracted.formatted_transcript or "",
            }
        )
        self.record = reconcile(updated, extracted)

        filled = filled_field_labels(extracted)
        if filled:
            description = (
                f"AI analysis complete! Auto-filled: {', '.join(filled)}. Please review and edit as needed."
            )
        else:
            description = "AI analysis complete. You can now fill in patient information."
        self.notices.push("Recording complete", description)
        return self.record

    def _complete_with_heuristics(self, final_transcript: str) -> PatientRecord:
        parsed = extract_heuristics(final_transcript)
        updated = self.record.model_copy(update={"transcript": final_transcript})
        self.record = merge_heuristic(updated, parsed)
        filled = filled_field_labels(parsed)
        self.notices.push(
            "Recording complete",
            f"Filled from transcript: {', '.join(filled)}." if filled else "You can now fill in patient information.",
        )
        return self.record

    async def _analyze(self, transcript: str) -> AnalysisResponse:
        if self._analyzer is None:
            return AnalysisResponse(success=False, error="Analyzer is not configured.")
        return await self._analyzer.analyze_async(transcript)

    def _on_transcript_update(self, transcript: str) -> None:
        self.transcript = transcript

    def _on_segment_analyzed(self, result: ExtractionResult) -> None:
        self.record = reconcile(self.record, normalize_extraction(result))

    def _on_recognition_error(self, exc: RecognitionError) -> None:
        self.notices.push("Recording stopped", exc.message, level="error")

    # --------------------
    # EDITING
    # --------------------

    def update_fields(self, fields: Mapping[str, Any]) -> PatientRecord:
        updates: dict[str, str] = {}
        for key, value in fields.items():
            name = _field_name(key)
            if name not in EDITABLE_FIELDS:
                raise ValueError(f"Unknown record field: {key}")
            updates[name] = "" if value is None else str(value)
        self.record = self.record.model_copy(update=updates)
        if "transcript" in updates:
            self.transcript = updates["transcript"]
        return self.record

    def fill_gaps_from_transcript(self) -> PatientRecord:
        source_text = self.transcript or self.record.transcript
        parsed = extract_heuristics(source_text)
        self.record = merge_heuristic(self.record, parsed)
        return self.record

    def new_recording(self) -> None:
        self.session.discard_pending_analysis()
        self.record = PatientRecord()
        self.transcript = ""

    def load_record(self, record_id: str) -> PatientRecord:
        record = self._store.get_record(record_id)
        self.session.discard_pending_analysis()
        self.record = record
        self.transcript = record.transcript
        return record

    # --------------------
    # PERSISTENCE
    # --------------------

    def save(self) -> Optional[str]:
        name = self.record.patient_name.strip()
        if not name:
            self.notices.push(
                "Patient name required",
                "Please enter the patient's name before saving.",
                level="error",
            )
            return None

        try:
            if self.record.id:
                self._store.update_record(self.record.id, self.record)
                record_id = self.record.id
                self.notices.push("Patient information updated", f"Updated information for {name}.")
            else:
                record_id = self._store.insert_record(self.record)
                self.notices.push("Patient information saved", f"Saved information for {name}.")
        except (RecordStoreError, KeyError) as exc:
            logger.warning("saving patient failed: %s", exc)
            self.notices.push(
                "Error saving patient",
                "Could not save patient information to database.",
                level="error",
            )
            return None

        self.new_recording()
        return record_id

    def delete(self, record_id: str) -> bool:
        try:
            name = self._store.get_record(record_id).patient_name or "patient"
            self._store.delete_record(record_id)
        except (RecordStoreError, KeyError) as exc:
            logger.warning("deleting patient failed: %s", exc)
            self.notices.push(
                "Error deleting patient",
                "Could not delete patient record from database.",
                level="error",
            )
            return False

        if self.record.id == record_id:
            self.new_recording()
        self.notices.push("Note deleted", f"Patient note for {name} has been removed.")
        return True


def _field_name(key: str) -> str:
    field = PatientRecord.model_fields.get(key)
    if field is not None:
        return key
    for name, info in PatientRecord.model_fields.items():
        if info.alias == key:
            return name
    return key
