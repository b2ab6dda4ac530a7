from __future__ import annotations

import datetime as _dt
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Mapping, Union

from .contracts import EDITABLE_FIELDS, PatientRecord

logger = logging.getLogger(__name__)

RecordFields = Union[PatientRecord, Mapping[str, Any]]


class RecordStoreError(RuntimeError):
    """Raised when the backing store rejects a read or write."""


def _now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _field_values(fields: RecordFields) -> Dict[str, str]:
    if isinstance(fields, PatientRecord):
        return fields.editable_fields()
    record = PatientRecord.model_validate(
        {key: value for key, value in fields.items() if key not in {"id", "created_at", "createdAt"}}
    )
    return record.editable_fields()


class RecordStore(ABC):
    @abstractmethod
    def list_records(self) -> List[PatientRecord]: ...

    @abstractmethod
    def get_record(self, record_id: str) -> PatientRecord: ...

    @abstractmethod
    def insert_record(self, fields: RecordFields) -> str: ...

    @abstractmethod
    def update_record(self, record_id: str, fields: RecordFields) -> bool: ...

    @abstractmethod
    def delete_record(self, record_id: str) -> bool: ...


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._lock = RLock()
        self._records: Dict[str, Dict[str, Any]] = {}
        self._seq = 0

    def list_records(self) -> List[PatientRecord]:
        with self._lock:
            rows = sorted(
                self._records.values(),
                key=lambda row: (row["created_at"], row["seq"]),
                reverse=True,
            )
            return [PatientRecord(**row["record"]) for row in rows]

    def get_record(self, record_id: str) -> PatientRecord:
        with self._lock:
            row = self._records.get(record_id)
            if row is None:
                raise KeyError(f"Unknown record_id: {record_id}")
            return PatientRecord(**row["record"])

    def insert_record(self, fields: RecordFields) -> str:
        values = _field_values(fields)
        record_id = uuid.uuid4().hex
        created_at = _now_iso()
        with self._lock:
            self._seq += 1
            self._records[record_id] = {
                "created_at": created_at,
                "seq": self._seq,
                "record": {"id": record_id, "created_at": created_at, **values},
            }
        return record_id

    def update_record(self, record_id: str, fields: RecordFields) -> bool:
        values = _field_values(fields)
        with self._lock:
            row = self._records.get(record_id)
            if row is None:
                raise KeyError(f"Unknown record_id: {record_id}")
            row["record"] = {**row["record"], **values}
        return True

    def delete_record(self, record_id: str) -> bool:
        with self._lock:
            row = self._records.pop(record_id, None)
        if row is None:
            raise KeyError(f"Unknown record_id: {record_id}")
        return True


_COLUMNS = ("id", "created_at") + EDITABLE_FIELDS


class SQLiteRecordStore(RecordStore):
    """
    Patient records in a single `patients` table.

    Column names are the snake_case record field names; NULL columns read back
    as empty strings.
    """

    def __init__(self, db_path: Union[str, Path]):
        self._db_path = Path(db_path)
        self._lock = RLock()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            conn = self._connect()
            try:
                self._ensure_schema(conn)
            finally:
                conn.close()

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30)
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Could not open record store: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        columns = ",\n".join(f"{name} TEXT" for name in EDITABLE_FIELDS)
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS patients (
                id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                {columns}
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_patients_created ON patients(created_at DESC)"
        )
        conn.commit()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PatientRecord:
        keys = set(row.keys())
        return PatientRecord(**{name: (row[name] or "") if name in keys else "" for name in _COLUMNS})

    def _execute(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(sql, params)
                rows = cursor.fetchall()
                conn.commit()
                if cursor.rowcount == 0 and sql.lstrip().upper().startswith(("UPDATE", "DELETE")):
                    raise KeyError("no matching record")
                return rows
            except sqlite3.Error as exc:
                logger.warning("record store query failed: %s", exc)
                raise RecordStoreError(str(exc)) from exc
            finally:
                conn.close()

    def list_records(self) -> List[PatientRecord]:
        rows = self._execute("SELECT * FROM patients ORDER BY created_at DESC, rowid DESC")
        return [self._row_to_record(row) for row in rows]

    def get_record(self, record_id: str) -> PatientRecord:
        rows = self._execute("SELECT * FROM patients WHERE id = ?", (record_id,))
        if not rows:
            raise KeyError(f"Unknown record_id: {record_id}")
        return self._row_to_record(rows[0])

    def insert_record(self, fields: RecordFields) -> str:
        values = _field_values(fields)
        record_id = uuid.uuid4().hex
        names = ("id", "created_at") + tuple(values)
        placeholders = ", ".join("?" for _ in names)
        self._execute(
            f"INSERT INTO patients ({', '.join(names)}) VALUES ({placeholders})",
            (record_id, _now_iso(), *values.values()),
        )
        return record_id

    def update_record(self, record_id: str, fields: RecordFields) -> bool:
        values = _field_values(fields)
        assignments = ", ".join(f"{name} = ?" for name in values)
        try:
            self._execute(
                f"UPDATE patients SET {assignments} WHERE id = ?",
                (*values.values(), record_id),
            )
        except KeyError:
            raise KeyError(f"Unknown record_id: {record_id}") from None
        return True

    def delete_record(self, record_id: str) -> bool:
        try:
            self._execute("DELETE FROM patients WHERE id = ?", (record_id,))
        except KeyError:
            raise KeyError(f"Unknown record_id: {record_id}") from None
        return True
