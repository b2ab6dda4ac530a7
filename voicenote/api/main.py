from __future__ import annotations

"""
API surface for the voicenote service.

Design intent:
- Keep API orchestration thin and typed.
- Relay recognition events from the capture client into per-session state machines.
- Report collaborator failures as notices, not as server errors.
"""

import logging
import time
import uuid
from typing import Any, Literal, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from voicenote.analysis.analyzer import TranscriptAnalyzer, build_analyzer
from voicenote.analysis.heuristics import extract_heuristics
from voicenote.internal_core.config import load_config
from voicenote.internal_core.contracts import (
    AnalysisResponse,
    ExtractionResult,
    NoteView,
    PatientRecord,
    SessionSnapshot,
)
from voicenote.internal_core.record_store import (
    InMemoryRecordStore,
    RecordStore,
    RecordStoreError,
    SQLiteRecordStore,
)
from voicenote.note.workflow import NoteWorkflow
from voicenote.recording.relay import RelayTranscriptionSource


class TranscriptRequest(BaseModel):
    transcript: Optional[str] = None


class RecordWriteRequest(BaseModel):
    record: PatientRecord


class RecordIdResponse(BaseModel):
    id: str


class RecordListResponse(BaseModel):
    records: list[PatientRecord] = Field(default_factory=list)


class SessionCreateRequest(BaseModel):
    # Capabilities reported by the capture client.
    supported: bool = True
    permission_granted: bool = True


class SessionResponse(BaseModel):
    session_id: str
    note: NoteView
    debug: dict[str, Any] = Field(default_factory=dict)


class RecognitionEventRequest(BaseModel):
    type: Literal["start", "result", "error", "end"]
    final_segments: list[str] = Field(default_factory=list)
    interim: Optional[str] = None
    error: Optional[str] = None


class RecognitionEventResponse(BaseModel):
    session_id: str
    relayed: bool
    recording: SessionSnapshot


class FieldUpdateRequest(BaseModel):
    fields: dict[str, Optional[str]] = Field(default_factory=dict)


class SaveResponse(BaseModel):
    session_id: str
    saved: bool
    record_id: Optional[str] = None
    note: NoteView


cfg = load_config()
logging.basicConfig(level=getattr(logging, cfg.SCRIBE_LOG_LEVEL.upper(), logging.INFO))

app = FastAPI(title="voicenote service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_record_store() -> RecordStore:
    existing = getattr(app.state, "record_store", None)
    if isinstance(existing, RecordStore):
        return existing
    if cfg.SCRIBE_RECORD_STORE == "memory":
        created: RecordStore = InMemoryRecordStore()
    else:
        created = SQLiteRecordStore(cfg.sqlite_path())
    setattr(app.state, "record_store", created)
    return created


def _get_analyzer() -> Optional[TranscriptAnalyzer]:
    # An explicit None on app.state means "bypass the model".
    if hasattr(app.state, "transcript_analyzer"):
        return getattr(app.state, "transcript_analyzer")
    created = build_analyzer(cfg)
    setattr(app.state, "transcript_analyzer", created)
    return created


def _get_session_registry() -> dict[str, dict[str, Any]]:
    existing = getattr(app.state, "note_sessions", None)
    if isinstance(existing, dict):
        return existing
    created: dict[str, dict[str, Any]] = {}
    setattr(app.state, "note_sessions", created)
    return created


def _cleanup_expired_sessions() -> int:
    registry = _get_session_registry()
    now = time.time()
    expired = [
        session_id
        for session_id, entry in registry.items()
        if entry["expires_at"] <= now and entry["workflow"].session.state == "idle"
    ]
    for session_id in expired:
        registry.pop(session_id, None)
    return len(expired)


def _get_workflow(session_id: str) -> NoteWorkflow:
    registry = _get_session_registry()
    entry = registry.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Unknown session_id: {session_id}")
    entry["expires_at"] = time.time() + cfg.SCRIBE_SESSION_TTL_SECONDS
    return entry["workflow"]


def _session_response(session_id: str, workflow: NoteWorkflow, **debug: Any) -> SessionResponse:
    return SessionResponse(session_id=session_id, note=workflow.view(), debug=debug)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


# --------------------
# ANALYSIS
# --------------------

@app.post("/analyze-transcript", response_model=AnalysisResponse)
async def analyze_transcript(payload: TranscriptRequest):
    transcript = payload.transcript
    if not transcript or not transcript.strip():
        return JSONResponse(status_code=400, content={"error": "Transcript is required"})

    analyzer = _get_analyzer()
    if analyzer is None:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Analyzer is not configured."},
        )

    response = await analyzer.analyze_async(transcript)
    if not response.success:
        return JSONResponse(status_code=500, content={"success": False, "error": response.error})
    return response


@app.post("/heuristics/extract", response_model=ExtractionResult)
async def heuristics_extract(payload: TranscriptRequest) -> ExtractionResult:
    return extract_heuristics(payload.transcript or "")


# --------------------
# RECORDS
# --------------------

@app.get("/records", response_model=RecordListResponse)
async def list_records() -> RecordListResponse:
    try:
        records = _get_record_store().list_records()
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=f"Could not load patient records: {exc}") from exc
    return RecordListResponse(records=records)


@app.get("/records/{record_id}", response_model=PatientRecord)
async def get_record(record_id: str) -> PatientRecord:
    try:
        return _get_record_store().get_record(record_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown record_id: {record_id}") from exc
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/records", response_model=RecordIdResponse)
async def create_record(payload: RecordWriteRequest) -> RecordIdResponse:
    if not payload.record.patient_name.strip():
        raise HTTPException(status_code=400, detail="Patient name required.")
    try:
        record_id = _get_record_store().insert_record(payload.record)
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return RecordIdResponse(id=record_id)


@app.put("/records/{record_id}", response_model=RecordIdResponse)
async def update_record(record_id: str, payload: RecordWriteRequest) -> RecordIdResponse:
    if not payload.record.patient_name.strip():
        raise HTTPException(status_code=400, detail="Patient name required.")
    try:
        _get_record_store().update_record(record_id, payload.record)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown record_id: {record_id}") from exc
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return RecordIdResponse(id=record_id)


@app.delete("/records/{record_id}")
async def delete_record(record_id: str) -> dict[str, str]:
    try:
        _get_record_store().delete_record(record_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown record_id: {record_id}") from exc
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"status": "deleted"}


# --------------------
# SESSIONS
# --------------------

@app.post("/sessions", response_model=SessionResponse)
async def create_session(payload: Optional[SessionCreateRequest] = None) -> SessionResponse:
    payload = payload or SessionCreateRequest()
    _cleanup_expired_sessions()
    source = RelayTranscriptionSource(
        supported=payload.supported,
        permission_granted=payload.permission_granted,
    )
    workflow = NoteWorkflow(
        _get_record_store(),
        source,
        analyzer=_get_analyzer(),
        language=cfg.SCRIBE_RECOGNITION_LANG,
        restart_delay_sec=cfg.restart_delay_sec,
    )
    session_id = uuid.uuid4().hex
    _get_session_registry()[session_id] = {
        "workflow": workflow,
        "source": source,
        "expires_at": time.time() + cfg.SCRIBE_SESSION_TTL_SECONDS,
    }
    return _session_response(session_id, workflow, analyzer=workflow.analyzer_enabled)


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str) -> SessionResponse:
    return _session_response(session_id, _get_workflow(session_id))


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str) -> dict[str, str]:
    workflow = _get_workflow(session_id)
    workflow.session.stop()
    _get_session_registry().pop(session_id, None)
    return {"status": "deleted"}


@app.post("/sessions/{session_id}/start", response_model=SessionResponse)
async def start_session(session_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    started = await workflow.start_recording()
    return _session_response(session_id, workflow, transitioned=started)


@app.post("/sessions/{session_id}/pause", response_model=SessionResponse)
async def pause_session(
    session_id: str,
    wait_for_analysis: bool = Query(default=False),
) -> SessionResponse:
    workflow = _get_workflow(session_id)
    was_recording = workflow.session.state == "recording"
    task = workflow.pause_recording()
    if task is not None and wait_for_analysis:
        await workflow.session.wait_for_analysis()
    return _session_response(
        session_id,
        workflow,
        transitioned=was_recording,
        analysis_started=task is not None,
    )


@app.post("/sessions/{session_id}/resume", response_model=SessionResponse)
async def resume_session(session_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    resumed = await workflow.resume_recording()
    return _session_response(session_id, workflow, transitioned=resumed)


@app.post("/sessions/{session_id}/stop", response_model=SessionResponse)
async def stop_session(session_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    record = await workflow.stop_recording()
    return _session_response(session_id, workflow, transitioned=record is not None)


@app.post("/sessions/{session_id}/recognition", response_model=RecognitionEventResponse)
async def relay_recognition_event(session_id: str, payload: RecognitionEventRequest) -> RecognitionEventResponse:
    workflow = _get_workflow(session_id)
    source: RelayTranscriptionSource = _get_session_registry()[session_id]["source"]
    stream = source.current
    relayed = stream is not None and stream.active
    if relayed:
        if payload.type == "start":
            stream.emit_start()
        elif payload.type == "result":
            stream.emit_result(payload.final_segments, payload.interim)
        elif payload.type == "error":
            stream.emit_error(payload.error or "unknown")
        elif payload.type == "end":
            stream.emit_end()
    return RecognitionEventResponse(
        session_id=session_id,
        relayed=relayed,
        recording=workflow.session.snapshot(),
    )


@app.patch("/sessions/{session_id}/record", response_model=SessionResponse)
async def update_session_record(session_id: str, payload: FieldUpdateRequest) -> SessionResponse:
    workflow = _get_workflow(session_id)
    try:
        workflow.update_fields(payload.fields)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_response(session_id, workflow)


@app.post("/sessions/{session_id}/fill-gaps", response_model=SessionResponse)
async def fill_gaps(session_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    workflow.fill_gaps_from_transcript()
    return _session_response(session_id, workflow)


@app.post("/sessions/{session_id}/new", response_model=SessionResponse)
async def new_recording(session_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    had_unsaved = workflow.has_unsaved_data()
    workflow.new_recording()
    return _session_response(session_id, workflow, discarded_unsaved=had_unsaved)


@app.post("/sessions/{session_id}/load/{record_id}", response_model=SessionResponse)
async def load_record(session_id: str, record_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    try:
        workflow.load_record(record_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown record_id: {record_id}") from exc
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _session_response(session_id, workflow)


@app.post("/sessions/{session_id}/save", response_model=SaveResponse)
async def save_record(session_id: str) -> SaveResponse:
    workflow = _get_workflow(session_id)
    record_id = workflow.save()
    return SaveResponse(
        session_id=session_id,
        saved=record_id is not None,
        record_id=record_id,
        note=workflow.view(),
    )


@app.delete("/sessions/{session_id}/records/{record_id}", response_model=SessionResponse)
async def delete_session_record(session_id: str, record_id: str) -> SessionResponse:
    workflow = _get_workflow(session_id)
    deleted = workflow.delete(record_id)
    return _session_response(session_id, workflow, deleted=deleted)
