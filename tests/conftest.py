"""Pytest configuration for mwaction tests."""

import sys
from pathlib import Path

import pytest
import structlog
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate each test from the developer's environment.

    This fixture:
    - Runs each test from an empty directory so no ``.env`` file is read
    - Removes every MWACTION_* variable from the environment
    - Resets the global settings instance before each test
    """
    import os

    for name in list(os.environ):
        if name.startswith("MWACTION_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)

    from mwaction.config import reset_settings

    reset_settings()

    return tmp_path


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test to prevent closed file handle errors.

    CliRunner captures stderr with a temporary file. When configure_logging()
    runs inside CliRunner, structlog binds loggers to that temp file. After
    the test, CliRunner closes the file, so reset structlog to drop stale
    references.
    """
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)
