from fastapi.testclient import TestClient

from voicenote.api.main import app
from voicenote.internal_core.contracts import AnalysisResponse, ExtractionResult, PatientRecord
from voicenote.internal_core.record_store import InMemoryRecordStore


class FakeAnalyzer:
    def __init__(self, response: AnalysisResponse) -> None:
        self.response = response
        self.calls: list[str] = []

    async def analyze_async(self, transcript: str) -> AnalysisResponse:
        self.calls.append(transcript)
        return self.response


def _install(analyzer=None) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    app.state.record_store = store
    app.state.transcript_analyzer = analyzer
    app.state.note_sessions = {}
    return store


def _clear_injected_state() -> None:
    for name in ("record_store", "transcript_analyzer", "note_sessions"):
        if hasattr(app.state, name):
            delattr(app.state, name)


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_analyze_transcript_requires_text() -> None:
    _install()
    try:
        client = TestClient(app)
        response = client.post("/analyze-transcript", json={"transcript": "  "})
    finally:
        _clear_injected_state()

    assert response.status_code == 400
    assert response.json() == {"error": "Transcript is required"}


def test_analyze_transcript_returns_camel_case_fields() -> None:
    analyzer = FakeAnalyzer(
        AnalysisResponse(success=True, data=ExtractionResult(patient_name="Jane", blood_pressure="120/80 mmHg"))
    )
    _install(analyzer)
    try:
        client = TestClient(app)
        response = client.post("/analyze-transcript", json={"transcript": "hello"})
    finally:
        _clear_injected_state()

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["patientName"] == "Jane"
    assert payload["data"]["bloodPressure"] == "120/80 mmHg"
    assert analyzer.calls == ["hello"]


def test_analyze_transcript_failure_returns_500() -> None:
    _install(FakeAnalyzer(AnalysisResponse(success=False, error="Invalid JSON response from AI")))
    try:
        client = TestClient(app)
        response = client.post("/analyze-transcript", json={"transcript": "hello"})
    finally:
        _clear_injected_state()

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Invalid JSON response from AI"}


def test_heuristics_extract_endpoint() -> None:
    client = TestClient(app)
    response = client.post(
        "/heuristics/extract",
        json={"transcript": "I am John Smith, 34 years old. I have a bad headache and fever."},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["patientName"] == "John Smith"
    assert payload["age"] == "34"


def test_records_crud() -> None:
    _install()
    try:
        client = TestClient(app)
        created = client.post("/records", json={"record": {"patientName": "Jane", "symptoms": "cough"}})
        assert created.status_code == 200
        record_id = created.json()["id"]

        listed = client.get("/records").json()["records"]
        assert [row["id"] for row in listed] == [record_id]

        updated = client.put(f"/records/{record_id}", json={"record": {"patientName": "Jane", "symptoms": "fever"}})
        assert updated.status_code == 200
        assert client.get(f"/records/{record_id}").json()["symptoms"] == "fever"

        assert client.delete(f"/records/{record_id}").status_code == 200
        missing = client.get(f"/records/{record_id}")
    finally:
        _clear_injected_state()

    assert missing.status_code == 404


def test_create_record_without_name_is_rejected() -> None:
    _install()
    try:
        client = TestClient(app)
        response = client.post("/records", json={"record": {"symptoms": "cough"}})
    finally:
        _clear_injected_state()

    assert response.status_code == 400
    assert "name" in response.json()["detail"]


def test_unknown_session_returns_404() -> None:
    _install()
    try:
        client = TestClient(app)
        response = client.post("/sessions/nope/start")
    finally:
        _clear_injected_state()

    assert response.status_code == 404
    assert "Unknown session_id" in response.json()["detail"]


def test_session_recording_flow_saves_patient() -> None:
    analyzer = FakeAnalyzer(
        AnalysisResponse(
            success=True,
            data=ExtractionResult(
                patient_name="Jane Doe",
                symptoms="sore throat",
                formatted_transcript="Patient: I am Jane Doe. Patient: My throat is sore.",
            ),
        )
    )
    store = _install(analyzer)
    try:
        with TestClient(app) as client:
            session_id = client.post("/sessions", json={}).json()["session_id"]

            started = client.post(f"/sessions/{session_id}/start").json()
            assert started["note"]["recording"]["state"] == "recording"

            relay = client.post(
                f"/sessions/{session_id}/recognition",
                json={"type": "result", "final_segments": ["I am Jane Doe."], "interim": "my thr"},
            ).json()
            assert relay["relayed"] is True
            assert relay["recording"]["live_transcript"] == "I am Jane Doe. my thr"

            paused = client.post(f"/sessions/{session_id}/pause", params={"wait_for_analysis": True}).json()
            assert paused["note"]["recording"]["state"] == "paused"
            assert paused["note"]["record"]["patientName"] == "Jane Doe"

            late = client.post(
                f"/sessions/{session_id}/recognition",
                json={"type": "result", "final_segments": ["dropped."]},
            ).json()
            assert late["relayed"] is False

            client.post(f"/sessions/{session_id}/resume")
            client.post(
                f"/sessions/{session_id}/recognition",
                json={"type": "result", "final_segments": ["My throat is sore."]},
            )
            stopped = client.post(f"/sessions/{session_id}/stop").json()
            note = stopped["note"]
            assert note["recording"]["state"] == "idle"
            assert note["record"]["symptoms"] == "sore throat"
            assert note["has_unsaved_data"] is True
            assert any(n["title"] == "Recording complete" for n in note["notices"])

            patched = client.patch(
                f"/sessions/{session_id}/record",
                json={"fields": {"diagnosis": "pharyngitis"}},
            ).json()
            assert patched["note"]["record"]["diagnosis"] == "pharyngitis"

            saved = client.post(f"/sessions/{session_id}/save").json()
            assert saved["saved"] is True
            assert saved["note"]["record"]["patientName"] == ""
    finally:
        _clear_injected_state()

    records = store.list_records()
    assert len(records) == 1
    assert records[0].patient_name == "Jane Doe"
    assert records[0].diagnosis == "pharyngitis"
    assert records[0].formatted_transcript.startswith("Patient:")
    assert len(analyzer.calls) == 2


def test_session_permission_denied_is_reported_as_notice() -> None:
    _install()
    try:
        with TestClient(app) as client:
            session_id = client.post("/sessions", json={"permission_granted": False}).json()["session_id"]
            response = client.post(f"/sessions/{session_id}/start")
    finally:
        _clear_injected_state()

    assert response.status_code == 200
    note = response.json()["note"]
    assert note["recording"]["state"] == "idle"
    assert note["notices"][-1]["level"] == "error"
    assert response.json()["debug"]["transitioned"] is False


def test_session_recognition_error_event_stops_recording() -> None:
    _install()
    try:
        with TestClient(app) as client:
            session_id = client.post("/sessions", json={}).json()["session_id"]
            client.post(f"/sessions/{session_id}/start")
            relay = client.post(
                f"/sessions/{session_id}/recognition",
                json={"type": "error", "error": "audio-capture"},
            ).json()
            view = client.get(f"/sessions/{session_id}").json()
    finally:
        _clear_injected_state()

    assert relay["recording"]["state"] == "idle"
    assert relay["recording"]["error"] == "No microphone found. Please check your microphone."
    assert view["note"]["notices"][-1]["title"] == "Recording stopped"


def test_session_save_without_name_keeps_fields() -> None:
    store = _install()
    try:
        with TestClient(app) as client:
            session_id = client.post("/sessions", json={}).json()["session_id"]
            client.patch(f"/sessions/{session_id}/record", json={"fields": {"symptoms": "cough"}})
            saved = client.post(f"/sessions/{session_id}/save").json()
            bad_field = client.patch(f"/sessions/{session_id}/record", json={"fields": {"nope": "x"}})
    finally:
        _clear_injected_state()

    assert saved["saved"] is False
    assert saved["note"]["record"]["symptoms"] == "cough"
    assert saved["note"]["notices"][-1]["title"] == "Patient name required"
    assert bad_field.status_code == 400
    assert store.list_records() == []


def test_session_load_and_delete_record() -> None:
    store = _install()
    record_id = store.insert_record(PatientRecord(patient_name="Ann", transcript="old words"))
    try:
        with TestClient(app) as client:
            session_id = client.post("/sessions", json={}).json()["session_id"]
            loaded = client.post(f"/sessions/{session_id}/load/{record_id}").json()
            missing = client.post(f"/sessions/{session_id}/load/nope")
            deleted = client.delete(f"/sessions/{session_id}/records/{record_id}").json()
    finally:
        _clear_injected_state()

    assert loaded["note"]["record"]["patientName"] == "Ann"
    assert loaded["note"]["transcript"] == "old words"
    assert missing.status_code == 404
    assert deleted["debug"]["deleted"] is True
    assert deleted["note"]["record"]["patientName"] == ""
    assert store.list_records() == []


def test_relayed_start_event_clears_last_error() -> None:
    _install()
    try:
        with TestClient(app) as client:
            session_id = client.post("/sessions", json={}).json()["session_id"]
            client.post(f"/sessions/{session_id}/start")
            workflow = app.state.note_sessions[session_id]["workflow"]
            workflow.session._error = "No speech detected. Please try speaking clearly."

            relay = client.post(f"/sessions/{session_id}/recognition", json={"type": "start"}).json()
    finally:
        _clear_injected_state()

    assert relay["relayed"] is True
    assert relay["recording"]["error"] is None
    assert relay["recording"]["state"] == "recording"
