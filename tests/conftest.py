import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the repo root (containing the `extractor` package) is importable
_TESTS_DIR = os.path.dirname(__file__)
_ROOT = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

# Settings are read at import time; provide credentials before any extractor import
os.environ.setdefault("EXTRACTOR_API_KEY", "test-key")
os.environ.setdefault("EXTRACTOR_DEFAULT_MODEL", "gpt-4o-mini")
os.environ.setdefault("EXTRACTOR_REQUEST_LOG", "true")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: Fast unit tests with mocks only")


def make_completion(content, prompt_tokens=10, completion_tokens=5):
    """Minimal stand-in for an openai ChatCompletion object."""
    usage = {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens}
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(model_dump=lambda: dict(usage)),
    )


@pytest.fixture
def completion():
    return make_completion


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip back-off delays in the provider client."""
    from extractor.services import llm_client

    delays = []

    async def _sleep(seconds):  # type: ignore[no-untyped-def]
        delays.append(seconds)

    monkeypatch.setattr(llm_client, "asyncio", SimpleNamespace(sleep=_sleep))
    return delays
