from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # voicenote/internal_core/config.py -> voicenote -> project
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_opt_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True)
class ScribeConfig:
    SCRIBE_ANALYZER_BACKEND: str
    OPENROUTER_API_KEY: Optional[str]
    SCRIBE_OPENROUTER_BASE_URL: str
    SCRIBE_ANALYZER_MODEL: str
    SCRIBE_ANALYZER_TEMPERATURE: float
    SCRIBE_ANALYZER_MAX_TOKENS: int
    SCRIBE_ANALYZER_TIMEOUT_SECONDS: float
    SCRIBE_ANALYZER_DEBUG_LOG: str
    SCRIBE_LLAMA_CPP_MODEL: str
    SCRIBE_LLAMA_CPP_N_CTX: int
    SCRIBE_LLAMA_CPP_N_GPU_LAYERS: int
    SCRIBE_LLAMA_CPP_CHAT_FORMAT: str
    SCRIBE_RECORD_STORE: str
    SCRIBE_SQLITE_PATH: str
    SCRIBE_RECOGNITION_LANG: str
    SCRIBE_RESTART_DELAY_MS: int
    SCRIBE_SESSION_TTL_SECONDS: int
    SCRIBE_LOG_LEVEL: str

    @property
    def restart_delay_sec(self) -> float:
        return max(0, self.SCRIBE_RESTART_DELAY_MS) / 1000.0

    def sqlite_path(self, repo_root: Path | None = None) -> Path:
        path = Path(self.SCRIBE_SQLITE_PATH).expanduser()
        if path.is_absolute():
            return path
        return ((repo_root or _project_root()) / path).resolve()


def load_config() -> ScribeConfig:
    return ScribeConfig(
        SCRIBE_ANALYZER_BACKEND=_getenv_str("SCRIBE_ANALYZER_BACKEND", "openrouter").strip().lower(),
        OPENROUTER_API_KEY=_getenv_opt_str("OPENROUTER_API_KEY"),
        SCRIBE_OPENROUTER_BASE_URL=_getenv_str(
            "SCRIBE_OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
        ),
        SCRIBE_ANALYZER_MODEL=_getenv_str("SCRIBE_ANALYZER_MODEL", "gpt-4o-mini"),
        SCRIBE_ANALYZER_TEMPERATURE=_getenv_float("SCRIBE_ANALYZER_TEMPERATURE", 0.1),
        SCRIBE_ANALYZER_MAX_TOKENS=_getenv_int("SCRIBE_ANALYZER_MAX_TOKENS", 1000),
        SCRIBE_ANALYZER_TIMEOUT_SECONDS=_getenv_float("SCRIBE_ANALYZER_TIMEOUT_SECONDS", 60.0),
        SCRIBE_ANALYZER_DEBUG_LOG=_getenv_str("SCRIBE_ANALYZER_DEBUG_LOG", ""),
        SCRIBE_LLAMA_CPP_MODEL=_getenv_str("SCRIBE_LLAMA_CPP_MODEL", ""),
        SCRIBE_LLAMA_CPP_N_CTX=_getenv_int("SCRIBE_LLAMA_CPP_N_CTX", 4096),
        SCRIBE_LLAMA_CPP_N_GPU_LAYERS=_getenv_int("SCRIBE_LLAMA_CPP_N_GPU_LAYERS", -1),
        SCRIBE_LLAMA_CPP_CHAT_FORMAT=_getenv_str("SCRIBE_LLAMA_CPP_CHAT_FORMAT", ""),
        SCRIBE_RECORD_STORE=_getenv_str("SCRIBE_RECORD_STORE", "sqlite").strip().lower(),
        SCRIBE_SQLITE_PATH=_getenv_str("SCRIBE_SQLITE_PATH", "./data/patients.sqlite"),
        SCRIBE_RECOGNITION_LANG=_getenv_str("SCRIBE_RECOGNITION_LANG", "en-US"),
        SCRIBE_RESTART_DELAY_MS=_getenv_int("SCRIBE_RESTART_DELAY_MS", 100),
        SCRIBE_SESSION_TTL_SECONDS=_getenv_int("SCRIBE_SESSION_TTL_SECONDS", 14400),
        SCRIBE_LOG_LEVEL=_getenv_str("SCRIBE_LOG_LEVEL", "INFO"),
    )
