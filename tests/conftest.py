import pytest

from data_models import FetchResult
from storage import InMemoryStore


class FakeFetcher:
    """Serves canned FetchResults by URL and records every URL requested."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            return FetchResult(ok=False, status=404, error_kind="http_error", error="HTTP Error: 404 Not Found")
        if isinstance(response, FetchResult):
            return response
        return FetchResult(ok=True, status=200, data=response)


class DeferredSpawner:
    """Collects spawned tasks so a test decides when they run."""

    def __init__(self):
        self.tasks = []

    def __call__(self, func, *args, **kwargs):
        self.tasks.append((func, args, kwargs))

    def run_all(self):
        while self.tasks:
            func, args, kwargs = self.tasks.pop(0)
            func(*args, **kwargs)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def fake_fetch():
    return FakeFetcher()


@pytest.fixture
def deferred_spawn():
    return DeferredSpawner()
