"""Common test fixtures for tagnotes."""

import json

import pytest

from tests.fakes import FakeClock, SequentialIds
from tagnotes.config import config
from tagnotes.observability import metrics
from tagnotes.services.board import NoteBoard
from tagnotes.services.note_store import NoteStore
from tagnotes.storage.memory_backend import MemoryBackend


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point storage paths at a temporary directory (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "data_dir", tmp_path / "data")
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "tagnotes.db")
    monkeypatch.setattr(config, "storage_backend", "json")
    yield config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend, clock, ids):
    """An empty store persisting to an in-memory backend."""
    return NoteStore.from_backend(backend, clock=clock, id_factory=ids)


@pytest.fixture
def sample_backend():
    """Backend pre-loaded with two notes and three tags.

    note 1: "buy milk"  tags ["home"]  last_update 100
    note 2: "fix bug"   tags ["work"]  last_update 200
    tag "idea" is registered but unused.
    """
    notes = [
        {"id": "1", "text": "buy milk", "tags": ["home"], "last_update": 100},
        {"id": "2", "text": "fix bug", "tags": ["work"], "last_update": 200},
    ]
    return MemoryBackend(
        {
            "notes": json.dumps(notes),
            "tags": json.dumps(["home", "work", "idea"]),
        }
    )


@pytest.fixture
def sample_store(sample_backend, clock, ids):
    return NoteStore.from_backend(sample_backend, clock=clock, id_factory=ids)


@pytest.fixture
def board(sample_store):
    return NoteBoard(sample_store)
