from collections.abc import Iterator
from pathlib import Path

import pytest

from tandem.util.log import Log, LogFormat, LogLevel


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_paths(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, tmp_path_factory: pytest.TempPathFactory
) -> Path:
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("TANDEM_TEST_HOME", str(home))
    monkeypatch.setenv("TANDEM_TEST_DATA", str(tmp_path / "data"))
    monkeypatch.setenv("TANDEM_TEST_CONFIG", str(tmp_path / "config"))
    return home


@pytest.fixture(autouse=True)
def _log_teardown() -> Iterator[None]:
    yield
    Log.close()
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=False, file=False)
