from .config import ScribeConfig, load_config
from .record_store import InMemoryRecordStore, RecordStore, SQLiteRecordStore

__all__ = [
    "ScribeConfig",
    "load_config",
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
]
