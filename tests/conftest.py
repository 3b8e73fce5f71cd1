"""Shared test fixtures for all tests."""

import json
import shutil
import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from signal_daemon import database, observability
from signal_daemon.models import Article
from signal_daemon.storage import Storage

# 2025-03-12 15:00 UTC is 11:00 in New York (EDT)
FIXED_NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


def insights_response(article_ids: Optional[List[int]] = None, **extra) -> str:
    """A well-formed model reply citing the given article ids."""
    payload = {
        "recommendedActions": [
            {
                "action": "Audit the digital application funnel",
                "rationale": "Rate volatility is pushing borrowers to compare lenders online.",
                "category": "Customer Experience",
            }
        ],
        "themes": [
            {
                "name": "Market Trends",
                "icon": "📊",
                "insights": [
                    {
                        "text": "Rates eased for a third straight week.",
                        "articleIds": article_ids if article_ids is not None else [0],
                    }
                ],
                "actions": [
                    {"action": "Refresh the rate alert emails", "impact": "Higher re-engagement"}
                ],
            }
        ],
    }
    payload.update(extra)
    return json.dumps(payload)


class FakeLLMClient:
    """Stands in for LLMClient; records prompts and returns a canned reply."""

    def __init__(
        self,
        response: Optional[str] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.response = response if response is not None else insights_response()
        self.error = error
        self.delay = delay
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def complete(self, prompt: str, action: str = "insights") -> str:
        with self._lock:
            self.calls.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class Clock:
    """Settable clock for time-dependent cache behaviour."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def isolated_observability(tmp_path: Path, monkeypatch) -> Path:
    """Send JSONL events to a per-test directory."""
    obs_dir = tmp_path / "observability"
    monkeypatch.setattr(
        observability, "_logger", observability.ObservabilityLogger(obs_dir)
    )
    return obs_dir


@pytest.fixture
def test_db(monkeypatch) -> Path:
    """Create a temporary test database for each test."""
    temp_dir = tempfile.mkdtemp()

    # Set XDG_DATA_HOME so Storage() uses our test directory
    data_dir = Path(temp_dir) / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))

    db_path = data_dir / "signal" / "signal.db"
    database.init_db(db_path)

    yield db_path

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def storage(test_db: Path) -> Storage:
    storage = Storage(test_db)
    yield storage
    storage.close()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def make_article() -> Callable[..., Article]:
    """Factory for articles with sensible defaults."""
    counter = {"n": 0}

    def _make(
        source: str = "HousingWire",
        category: str = "mortgage",
        title: Optional[str] = None,
        link: Optional[str] = None,
        pub_date: Optional[datetime] = None,
        summary: Optional[str] = None,
    ) -> Article:
        counter["n"] += 1
        n = counter["n"]
        return Article(
            title=title or f"{source} article {n}",
            link=link or f"https://example.com/{source.lower().replace(' ', '-')}/{n}",
            source=source,
            category=category,
            summary=summary or f"Summary of {source} article {n}",
            pub_date=pub_date or FIXED_NOW - timedelta(hours=n),
        )

    return _make
