"""
Shared pytest fixtures for the comment brain tests.
"""
import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from tubebrain.services.harvester import HarvestConfig, HarvestOrchestrator
from tubebrain.services.storage import FileStorage, ModelStore, StorageError, StoragePaths


# Sample comments per video for harvest tests
SAMPLE_COMMENTS = {
    "vid_a": [
        "This song is stuck in my head. Send help!",
        "Who else is watching this in 2026?",
        "the drop at 1:32 is insane",
    ],
    "vid_b": [
        "I can't stop laughing at this",
        "who else is here after the trailer?",
    ],
    "vid_c": [
        "First!",
        "This is the best video on the platform",
        "Who else is watching for the cat",
    ],
}


class FakeYouTube:
    """In-memory discovery + fetch collaborator."""

    def __init__(self, trending, comments, failing=(), delays=None):
        self.trending = list(trending)
        self.comments = dict(comments)
        self.failing = set(failing)
        self.delays = dict(delays or {})
        self.fetched = []
        self.trending_calls = 0
        self.fail_trending = False

    async def list_trending(self, credential):
        self.trending_calls += 1
        if self.fail_trending:
            raise RuntimeError("trending endpoint down")
        return list(self.trending)

    async def fetch_snippets(self, item_id, credential, max_count):
        self.fetched.append(item_id)
        if item_id in self.delays:
            await asyncio.sleep(self.delays[item_id])
        if item_id in self.failing:
            raise RuntimeError(f"comments endpoint failed for {item_id}")
        return list(self.comments.get(item_id, []))[:max_count]


class Clock:
    """Settable UTC clock."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FlakyStorage(FileStorage):
    """FileStorage whose writes can be switched to fail."""

    def __init__(self):
        self.fail_writes = False
        self.fail_appends = False

    def write_json(self, path, data):
        if self.fail_writes:
            raise StorageError(f"disk full writing {path}")
        super().write_json(path, data)

    def append_jsonl(self, path, records):
        if self.fail_appends:
            raise StorageError(f"disk full appending to {path}")
        super().append_jsonl(path, records)


@pytest.fixture
def storage_paths(tmp_path) -> StoragePaths:
    return StoragePaths(
        map_path=tmp_path / "state" / "markov-map.json",
        ids_path=tmp_path / "state" / "harvested-ids.json",
        corpus_log_path=tmp_path / "state" / "corpus.jsonl",
        legacy_path=tmp_path / "state" / "markov.json",
    )


@pytest.fixture
def store(storage_paths) -> ModelStore:
    return ModelStore(storage_paths)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def make_brain(store, clock):
    """Factory for orchestrators sharing the test store and clock."""

    def _make(source, store_override=None, **config):
        return HarvestOrchestrator(
            discovery=source,
            fetcher=source,
            store=store_override or store,
            credential="test-key",
            config=HarvestConfig(**config),
            rng=random.Random(7),
            clock=clock,
        )

    return _make


def run(coro):
    """Drive a coroutine from a sync test."""
    return asyncio.run(coro)
