"""Common test fixtures for the note vault."""

import os
import textwrap
import time
from pathlib import Path

import pytest

from notevault.config import config
from notevault import main as main_module
from notevault import observability
from notevault.observability import MetricsCollector
from notevault.services.file_sync_watcher import FileSyncWatcher
from notevault.services.note_service import NoteService
from notevault.storage.vault_store import VaultStore


def write_note_file(root: Path, rel_path: str, content: str, mtime_offset: float = 0.0) -> Path:
    """Write a note file as an external editor would.

    ``mtime_offset`` shifts the file's modification time relative to now,
    so tests do not depend on filesystem timestamp resolution.
    """
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    if mtime_offset:
        stamp = time.time() + mtime_offset
        os.utime(path, (stamp, stamp))
    return path


@pytest.fixture
def vault_dir(tmp_path):
    """Create an empty vault root directory."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def write_file(vault_dir):
    """Write a file into the vault: ``write_file(rel_path, text, mtime_offset=0)``."""
    def _write(rel_path: str, content: str, mtime_offset: float = 0.0) -> Path:
        return write_note_file(vault_dir, rel_path, content, mtime_offset)
    return _write


@pytest.fixture
def test_config(vault_dir, monkeypatch):
    """Point the global config at the temporary vault (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", vault_dir.parent)
    monkeypatch.setattr(config, "vault_dir", vault_dir)
    monkeypatch.setattr(config, "sync_interval", 0.05)
    monkeypatch.setattr(config, "seed_welcome_note", False)
    monkeypatch.setattr(config, "log_dir", None)
    monkeypatch.setattr(config, "log_level", "INFO")
    yield config


@pytest.fixture
def store(vault_dir):
    """Create a loaded store on the empty vault."""
    vault_store = VaultStore(vault_dir)
    vault_store.load()
    return vault_store


@pytest.fixture
def note_service(store):
    """Create a NoteService backed by the test store."""
    return NoteService(store)


@pytest.fixture
def watcher(store):
    """Create a fast-polling watcher that is always stopped afterwards."""
    sync_watcher = FileSyncWatcher(store, interval=0.05)
    yield sync_watcher
    sync_watcher.stop(timeout=5)


@pytest.fixture(autouse=True)
def metrics(monkeypatch):
    """Give each test its own global metrics collector."""
    collector = MetricsCollector()
    monkeypatch.setattr(observability, "metrics", collector)
    monkeypatch.setattr(main_module, "metrics", collector)
    return collector
