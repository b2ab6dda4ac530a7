from pathlib import Path

from voicenote.internal_core.config import load_config


def test_defaults_when_env_unset(monkeypatch) -> None:
    for name in (
        "SCRIBE_ANALYZER_BACKEND",
        "OPENROUTER_API_KEY",
        "SCRIBE_ANALYZER_MODEL",
        "SCRIBE_RESTART_DELAY_MS",
        "SCRIBE_RECORD_STORE",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = load_config()

    assert cfg.SCRIBE_ANALYZER_BACKEND == "openrouter"
    assert cfg.OPENROUTER_API_KEY is None
    assert cfg.SCRIBE_ANALYZER_MODEL == "gpt-4o-mini"
    assert cfg.restart_delay_sec == 0.1
    assert cfg.SCRIBE_RECORD_STORE == "sqlite"


def test_env_overrides_and_blank_values(monkeypatch) -> None:
    monkeypatch.setenv("SCRIBE_ANALYZER_BACKEND", " Heuristic ")
    monkeypatch.setenv("OPENROUTER_API_KEY", "   ")
    monkeypatch.setenv("SCRIBE_ANALYZER_MAX_TOKENS", "")
    monkeypatch.setenv("SCRIBE_RESTART_DELAY_MS", "-5")

    cfg = load_config()

    assert cfg.SCRIBE_ANALYZER_BACKEND == "heuristic"
    assert cfg.OPENROUTER_API_KEY is None
    assert cfg.SCRIBE_ANALYZER_MAX_TOKENS == 1000
    assert cfg.restart_delay_sec == 0.0


def test_relative_sqlite_path_resolves_against_root(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SCRIBE_SQLITE_PATH", "db/notes.sqlite")
    assert load_config().sqlite_path(tmp_path) == (tmp_path / "db" / "notes.sqlite").resolve()

    absolute = tmp_path / "abs.sqlite"
    monkeypatch.setenv("SCRIBE_SQLITE_PATH", str(absolute))
    assert load_config().sqlite_path() == Path(absolute)
