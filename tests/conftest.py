import sys
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(TESTS_DIR))

from fakes import FakeProvider  # noqa: E402

from listing_studio.analysis import AnalysisEngine  # noqa: E402
from listing_studio.assets import AssetGenerator  # noqa: E402
from listing_studio.briefs import BriefPlanner  # noqa: E402
from listing_studio.models import User  # noqa: E402
from listing_studio.session import SessionStore  # noqa: E402
from listing_studio.storage import MemoryKeyValueStore  # noqa: E402


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def storage() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def user() -> User:
    return User.from_credentials("ana@example.com", "Acme")


@pytest.fixture
def make_studio(provider, storage):
    ticks = iter(range(1_700_000_000_000, 1_700_000_000_000 + 10_000))

    def _make(**kwargs) -> SessionStore:
        kwargs.setdefault("storage", storage)
        kwargs.setdefault("clock", lambda: next(ticks))
        kwargs.setdefault("require_login", True)
        kwargs.setdefault("history_limit", 20)
        return SessionStore(
            analysis_engine=AnalysisEngine(provider),
            brief_planner=BriefPlanner(provider),
            asset_generator=AssetGenerator(provider),
            history_key="history",
            session_key="session",
            **kwargs,
        )

    return _make
