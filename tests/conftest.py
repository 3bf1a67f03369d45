import pytest

from flatcache.cache.engine import CacheEngine
from flatcache.config import hierarchy
from flatcache.config.schema import CacheConfig


class FakeClock:
    """Manually advanced stand-in for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep the developer's env vars and ~/.flatcache out of every test."""
    for env_key in hierarchy._ENV_MAP:
        monkeypatch.delenv(env_key, raising=False)
    monkeypatch.setattr(hierarchy, "_GLOBAL_CONFIG_PATH", tmp_path / "no-global-config.yaml")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "object-cache"


@pytest.fixture
def make_engine(cache_dir, clock):
    """Factory for engines sharing one cache dir and clock (a 'process restart')."""

    def _make(**overrides) -> CacheEngine:
        settings = {"cache_dir": cache_dir, "secret": "test-secret"}
        settings.update(overrides)
        return CacheEngine(CacheConfig(**settings), clock=clock)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
