import sqlite3
import time

import pytest

from voicenote.internal_core.contracts import PatientRecord
from voicenote.internal_core.record_store import (
    InMemoryRecordStore,
    RecordStoreError,
    SQLiteRecordStore,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore()
    return SQLiteRecordStore(tmp_path / "nested" / "patients.sqlite")


def test_insert_then_get_roundtrips_fields(store) -> None:
    record_id = store.insert_record(
        PatientRecord(patient_name="Jane Doe", age="40", heart_rate="72 bpm", transcript="hello")
    )

    record = store.get_record(record_id)

    assert record.id == record_id
    assert record.created_at
    assert record.patient_name == "Jane Doe"
    assert record.heart_rate == "72 bpm"
    assert record.diagnosis == ""


def test_list_records_newest_first(store) -> None:
    first = store.insert_record({"patientName": "First"})
    time.sleep(0.002)
    second = store.insert_record({"patient_name": "Second"})

    ids = [record.id for record in store.list_records()]

    assert ids == [second, first]


def test_update_replaces_fields_but_keeps_identity(store) -> None:
    record_id = store.insert_record(PatientRecord(patient_name="Jane", symptoms="cough"))
    before = store.get_record(record_id)

    store.update_record(record_id, PatientRecord(id="ignored", patient_name="Jane", symptoms="fever"))
    after = store.get_record(record_id)

    assert after.symptoms == "fever"
    assert after.id == record_id
    assert after.created_at == before.created_at


def test_unknown_ids_raise_key_error(store) -> None:
    with pytest.raises(KeyError):
        store.get_record("missing")
    with pytest.raises(KeyError):
        store.update_record("missing", PatientRecord(patient_name="x"))
    with pytest.raises(KeyError):
        store.delete_record("missing")


def test_delete_removes_record(store) -> None:
    record_id = store.insert_record(PatientRecord(patient_name="Gone"))

    assert store.delete_record(record_id) is True

    assert store.list_records() == []


def test_sqlite_null_columns_read_back_empty(tmp_path) -> None:
    db_path = tmp_path / "patients.sqlite"
    store = SQLiteRecordStore(db_path)
    conn = sqlite3.connect(str(db_path))
    conn.execute(
        "INSERT INTO patients (id, created_at, patient_name) VALUES (?, ?, ?)",
        ("legacy", "2024-01-01T00:00:00+00:00", "Old Row"),
    )
    conn.commit()
    conn.close()

    record = store.get_record("legacy")

    assert record.patient_name == "Old Row"
    assert record.symptoms == ""


def test_sqlite_driver_errors_become_record_store_errors(tmp_path) -> None:
    db_path = tmp_path / "patients.sqlite"
    store = SQLiteRecordStore(db_path)
    conn = sqlite3.connect(str(db_path))
    conn.execute("DROP TABLE patients")
    conn.commit()
    conn.close()

    with pytest.raises(RecordStoreError):
        store.list_records()
