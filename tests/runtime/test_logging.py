from __future__ import annotations

from pathlib import Path

from helpers import write_settings
from tandem.core.config import ConfigStore
from tandem.core.config_schema import Scope
from tandem.runtime.logging import bootstrap_logging
from tandem.util.log import LogFormat, LogLevel


def _capture(monkeypatch) -> dict[str, object]:  # type: ignore[no-untyped-def]
    seen: dict[str, object] = {}

    def fake_configure(cls, *, level, format, console, file) -> None:  # type: ignore[no-untyped-def]
        seen.update(level=level, format=format, console=console, file=file)

    monkeypatch.setattr("tandem.runtime.logging.Log.configure", classmethod(fake_configure))
    return seen


def test_bootstrap_logging_defaults(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    seen = _capture(monkeypatch)

    settings = bootstrap_logging(ConfigStore(str(tmp_path)))

    assert settings.level is LogLevel.INFO
    assert settings.format is LogFormat.KV
    assert settings.console is False
    assert settings.file is True
    assert seen["file"] is True


def test_bootstrap_logging_prefers_settings(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    seen = _capture(monkeypatch)
    store = ConfigStore(str(tmp_path))
    write_settings(store, Scope.WORKSPACE, {
        "logging.level": "debug",
        "logging.format": "json",
        "logging.file": False,
    })

    settings = bootstrap_logging(store)

    assert settings.level is LogLevel.DEBUG
    assert settings.format is LogFormat.JSON
    assert settings.file is False
    assert seen["level"] is LogLevel.DEBUG


def test_bootstrap_logging_arguments_override_settings(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    _capture(monkeypatch)
    store = ConfigStore(str(tmp_path))
    write_settings(store, Scope.GLOBAL, {"logging.level": "debug", "logging.console": False})

    settings = bootstrap_logging(store, level="error", console=True)

    assert settings.level is LogLevel.ERROR
    assert settings.console is True
