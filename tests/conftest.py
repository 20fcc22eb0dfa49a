"""tests/conftest.py — Shared fixtures for the Spool test suite."""
import os
import sys
import pytest
from pathlib import Path

# Add api/ and tools/ to sys.path for encoder imports
REPO_ROOT = Path(__file__).resolve().parent.parent
for _p in (REPO_ROOT / "api", REPO_ROOT / "tools"):
    ps = str(_p)
    if ps not in sys.path:
        sys.path.insert(0, ps)

from spool_logging import configure_logging  # noqa: E402
from spool_observability import Telemetry  # noqa: E402
from spooling.contracts import EncoderSettings, Session  # noqa: E402
from spooling.encoder_map import clear_cache  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_runtime(monkeypatch):
    for var in [k for k in os.environ if k.startswith("SPOOL_")]:
        monkeypatch.delenv(var, raising=False)
    configure_logging(level="WARNING", json_format=False)
    Telemetry.reset()
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def session():
    return Session(query_id="test-query")


@pytest.fixture
def settings():
    return EncoderSettings()
