"""Common test fixtures for the Noted engine."""

import logging
from pathlib import Path

import pytest

from noted.config import config
from noted.engine import NotesEngine
from noted.observability import metrics
from noted.storage.note_repository import NoteRepository
from tests.fakes import ImmediateExecutor, ManualExecutor, ManualScheduler


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", Path("store") / "notes.db")
    monkeypatch.setattr(config, "log_dir", tmp_path / "logs")
    yield config


@pytest.fixture
def db_path(test_config) -> Path:
    return test_config.get_database_path()


@pytest.fixture
def note_repository(db_path):
    """Create a test note repository."""
    repository = NoteRepository(db_path)
    yield repository
    repository.close()


@pytest.fixture
def engine(db_path):
    """Open an engine over a fresh store."""
    result = NotesEngine.open(db_path)
    assert result.ok, result.message
    engine = result.value
    yield engine
    engine.close()


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def noted_logger():
    """The package logger, with handlers restored after the test."""
    logger = logging.getLogger("noted")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
