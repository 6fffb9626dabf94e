"""Background reconciliation of the vault directory into the store.

Files edited outside the process (by a text editor, a sync tool, git...)
are picked up by a polling thread that rescans the vault root on a fixed
interval. Each pass compares file modification times against the cached
notes, matched by relative path:

- no cached note at that path: the file is decoded and added,
- file newer than the cached ``modified``: the note is reloaded, id kept,
- otherwise: nothing to do.

Files deleted outside the process are not detected; their notes stay
cached until the process restarts.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from notevault.observability import timed_operation
from notevault.storage.vault_store import ReconcileOutcome, VaultStore, file_mtime

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0


@dataclass
class SyncReport:
    """Counts from a single reconciliation pass."""

    added: int = 0
    reloaded: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return self.added + self.reloaded


class FileSyncWatcher:
    """Polls the vault root and reconciles changes into a VaultStore."""

    def __init__(self, store: VaultStore, interval: float = DEFAULT_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._store = store
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._thread_lock = threading.Lock()
        self._passes = 0
        # Separate from _thread_lock, which stop() holds while joining _run
        self._passes_lock = threading.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        """Whether the background thread is alive."""
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def passes(self) -> int:
        """Number of completed background passes."""
        with self._passes_lock:
            return self._passes

    def start(self) -> None:
        """Start the background thread. Calling it while running is a no-op."""
        with self._thread_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, name="notevault-file-sync", daemon=True
            )
            self._thread.start()
        logger.info(
            "File sync watcher started for %s (every %.1fs)",
            self._store.root,
            self._interval,
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the background thread and wait for it to exit.

        An in-flight pass is allowed to finish; no pass starts after this
        returns. Safe to call when the watcher was never started.
        """
        with self._thread_lock:
            thread = self._thread
            self._stop_event.set()
            if thread is None:
                return
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("File sync watcher did not stop within %ss", timeout)
                return
            self._thread = None
        logger.info("File sync watcher stopped")

    def __enter__(self) -> "FileSyncWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run(self) -> None:
        """Loop body of the background thread."""
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                # Background errors never reach store callers
                logger.error("File sync pass failed: %s", e, exc_info=True)
            with self._passes_lock:
                self._passes += 1
            self._stop_event.wait(self._interval)

    def run_once(self) -> SyncReport:
        """Scan the vault root once and reconcile every changed file."""
        report = SyncReport()
        with timed_operation("sync_pass", root=str(self._store.root)) as counts:
            for rel_path, abs_path in self._store.iter_note_files():
                try:
                    mtime = file_mtime(abs_path)
                    if not self._store.needs_reconcile(rel_path, mtime):
                        report.unchanged += 1
                        continue
                    result = self._store.read_note_file(abs_path, rel_path)
                except FileNotFoundError:
                    # Removed between the directory scan and the read
                    continue
                except (OSError, ValueError) as e:
                    logger.warning("Cannot reconcile %s: %s", rel_path, e)
                    report.failed.append(rel_path)
                    continue

                outcome = self._store.reconcile(rel_path, result.note, mtime)
                if outcome is ReconcileOutcome.ADDED:
                    report.added += 1
                elif outcome is ReconcileOutcome.RELOADED:
                    report.reloaded += 1
                elif outcome is ReconcileOutcome.SKIPPED:
                    report.skipped += 1
                else:
                    report.unchanged += 1
            counts["added"] = report.added
            counts["reloaded"] = report.reloaded
            counts["skipped"] = report.skipped
            counts["failed"] = len(report.failed)

        if report.changed or report.failed:
            logger.info(
                "Sync pass: %d added, %d reloaded, %d failed",
                report.added,
                report.reloaded,
                len(report.failed),
            )
        return report
