"""Vault store: the in-memory note cache and its persistence boundary.

Notes are kept in a map keyed by id, with a second map from vault-relative
path to id so the file sync watcher can match files to cached notes.
Every read and write of the maps and the tag index goes through one lock.
Disk I/O in ``save`` and ``delete`` happens outside the lock; the lock is
re-taken only to commit the in-memory change once the file operation has
succeeded.

Known race: a ``save`` and a watcher reload of the same path are not
ordered against each other. Whichever commits last wins in the cache.
"""
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple, Union

from notevault.exceptions import ErrorCode, NoteValidationError, StorageError
from notevault.models.schema import Note
from notevault.observability import traced
from notevault.storage.frontmatter_codec import DecodeResult, FrontmatterCodec
from notevault.storage.tag_index import TagIndex
from notevault.utils import is_safe_relative_path, slugify_title

logger = logging.getLogger(__name__)

# Length of the id prefix appended to a title-derived filename on collision
COLLISION_SUFFIX_LENGTH = 8

_TEMP_SUFFIX = ".tmp"


class ReconcileOutcome(str, Enum):
    """What a reconciliation did with one file."""

    ADDED = "added"  # No cached note at that path; inserted with a fresh id
    RELOADED = "reloaded"  # Cached note replaced by the file contents, id kept
    UNCHANGED = "unchanged"  # File is not newer than the cached note
    SKIPPED = "skipped"  # A save to that path is in flight


@dataclass
class LoadReport:
    """Summary of a full load from disk."""

    loaded: int = 0
    failed: List[str] = field(default_factory=list)


def file_mtime(path: Path) -> datetime:
    """Return a file's modification time as an aware UTC datetime."""
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class VaultStore:
    """Authoritative in-memory view of the notes under a vault root."""

    def __init__(
        self,
        root: Union[str, Path],
        codec: Optional[FrontmatterCodec] = None,
        extension: str = ".md",
    ) -> None:
        self.root = Path(root)
        self.codec = codec or FrontmatterCodec()
        self.extension = extension

        self._lock = threading.RLock()
        self._notes: Dict[str, Note] = {}
        self._paths: Dict[str, str] = {}  # relative path -> note id
        # Relative path -> ids of notes whose save is writing that path
        self._pending: Dict[str, List[str]] = {}
        self._tags = TagIndex()

        logger.info(f"VaultStore initialized: root={self.root}, extension={extension}")

    # ------------------------------------------------------------------
    # Disk scanning
    # ------------------------------------------------------------------

    def iter_note_files(self) -> List[Tuple[str, Path]]:
        """List note files under the root as ``(relative_path, absolute_path)``.

        Relative paths use ``/`` separators on every platform.
        """
        if not self.root.is_dir():
            return []
        files = sorted(
            p for p in self.root.rglob(f"*{self.extension}") if p.is_file()
        )
        return [(p.relative_to(self.root).as_posix(), p) for p in files]

    def read_note_file(self, abs_path: Path, rel_path: str) -> DecodeResult:
        """Read and decode one note file.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not valid UTF-8.
        """
        text = abs_path.read_text(encoding="utf-8")
        result = self.codec.decode_with_status(text, rel_path)
        if not result.has_frontmatter:
            logger.debug(f"No frontmatter in {rel_path}, read as freeform markdown")
        elif result.degraded:
            logger.warning(
                f"Malformed header values in {rel_path} replaced by defaults: "
                f"{', '.join(result.degraded_fields)}"
            )
        return result

    @traced("load", counts=lambda r: {"loaded": r.loaded, "failed": len(r.failed)})
    def load(self) -> LoadReport:
        """Load every note file under the root into the cache.

        A file that cannot be read or decoded is logged and skipped. Files
        whose path is already cached keep the cached note id.
        """
        report = LoadReport()
        if not self.root.is_dir():
            logger.warning(f"Vault root {self.root} does not exist; nothing to load")
            return report

        self._cleanup_temp_files()
        logger.info(f"Loading notes from {self.root}")

        for rel_path, abs_path in self.iter_note_files():
            try:
                mtime = file_mtime(abs_path)
                result = self.read_note_file(abs_path, rel_path)
            except (OSError, ValueError) as e:
                # ValueError covers UnicodeDecodeError and model validation
                logger.error(f"Failed to load note {rel_path}: {e}")
                report.failed.append(rel_path)
                continue
            self._apply_disk_version(rel_path, result.note, mtime, force=True)
            report.loaded += 1

        if report.failed:
            logger.warning(
                f"Failed to load {len(report.failed)} files: "
                f"{report.failed[:5]}{'...' if len(report.failed) > 5 else ''}"
            )
        logger.info(f"Loaded {report.loaded} notes from {self.root}")
        return report

    def _cleanup_temp_files(self) -> None:
        """Remove temp files left behind by writes that crashed mid-way."""
        for temp_file in self.root.rglob(f".*{self.extension}.*{_TEMP_SUFFIX}"):
            try:
                temp_file.unlink()
                logger.debug(f"Removed orphaned temp file: {temp_file.name}")
            except OSError as e:
                logger.warning(f"Failed to remove orphaned temp file {temp_file.name}: {e}")

    # ------------------------------------------------------------------
    # Reconciliation (used by the file sync watcher)
    # ------------------------------------------------------------------

    def needs_reconcile(self, rel_path: str, mtime: datetime) -> bool:
        """Check whether a file is new or newer than its cached note."""
        with self._lock:
            if rel_path in self._pending:
                return False
            note_id = self._paths.get(rel_path)
            if note_id is None:
                return True
            return mtime > self._notes[note_id].modified

    def reconcile(self, rel_path: str, decoded: Note, mtime: datetime) -> ReconcileOutcome:
        """Bring the cached note at ``rel_path`` in line with the file.

        Args:
            rel_path: Vault-relative path of the file.
            decoded: Note decoded from the file contents.
            mtime: File modification time observed before reading it.
        """
        return self._apply_disk_version(rel_path, decoded, mtime, force=False)

    def _apply_disk_version(
        self, rel_path: str, decoded: Note, mtime: datetime, force: bool
    ) -> ReconcileOutcome:
        with self._lock:
            if rel_path in self._pending:
                return ReconcileOutcome.SKIPPED

            existing_id = self._paths.get(rel_path)
            existing = self._notes.get(existing_id) if existing_id else None
            if existing is not None and not force and mtime <= existing.modified:
                return ReconcileOutcome.UNCHANGED

            note = decoded.model_copy(deep=True)
            if existing is not None:
                note.id = existing.id
            note.path = rel_path
            # Later passes compare file mtime against this value
            if mtime > note.modified:
                note.modified = mtime

            self._notes[note.id] = note
            self._paths[rel_path] = note.id
            self._tags.update(note.tags)

        if existing is None:
            logger.info(f"Added note from disk: {note.title} ({rel_path})")
            return ReconcileOutcome.ADDED
        logger.info(f"Reloaded note from disk: {note.title} ({rel_path})")
        return ReconcileOutcome.RELOADED

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @traced("save")
    def save(self, note: Note) -> Note:
        """Persist a note and commit it to the cache.

        Derives ``note.path`` from the title when it is unset. The file is
        written first; the cache is only updated once the write succeeded.

        Args:
            note: The note to store. The caller's object is not modified.

        Returns:
            A copy of the committed note (with its path filled in).

        Raises:
            NoteValidationError: If an explicit path escapes the vault root.
            StorageError: If the file cannot be written. The cache is unchanged.
        """
        pending = note.model_copy(deep=True)
        if pending.path is not None:
            pending.path = self._normalize_path(pending.path)
        base_taken_on_disk = (
            pending.path is None
            and (self.root / self._slug_path(pending.title)).exists()
        )

        with self._lock:
            previous = self._notes.get(pending.id)
            if pending.path is None and previous is not None:
                pending.path = previous.path
            if pending.path is None:
                pending.path = self._derive_path(pending, base_taken_on_disk)
            self._pending.setdefault(pending.path, []).append(pending.id)

        target = self.root / pending.path
        try:
            self._write_file(target, self.codec.encode(pending))
        except OSError as e:
            with self._lock:
                self._release_pending(pending.path, pending.id)
            logger.error(f"Failed to save note {pending.id} to {pending.path}: {e}")
            raise StorageError(
                f"Failed to write note '{pending.title}'",
                operation="save",
                path=pending.path,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        stale_path: Optional[str] = None
        with self._lock:
            self._release_pending(pending.path, pending.id)

            owner = self._paths.get(pending.path)
            if owner is not None and owner != pending.id:
                # The file now holds this note; the other one no longer has a file
                evicted = self._notes.pop(owner, None)
                logger.warning(
                    f"Note {owner} ({evicted.title if evicted else '?'}) was "
                    f"overwritten at {pending.path} by note {pending.id}"
                )

            current = self._notes.get(pending.id)
            if current is not None and current.path and current.path != pending.path:
                if self._paths.get(current.path) == pending.id:
                    del self._paths[current.path]
                    stale_path = current.path

            self._notes[pending.id] = pending
            self._paths[pending.path] = pending.id
            self._tags.update(pending.tags)
            result = pending.model_copy(deep=True)

        if stale_path is not None:
            self._remove_stale_file(stale_path)

        logger.info(f"Saved note: {pending.title} ({pending.id}) -> {pending.path}")
        return result

    def add(self, note: Note) -> Note:
        """Add a note to the vault. Same as :meth:`save`."""
        return self.save(note)

    @traced("delete", counts=lambda deleted: {"deleted": int(deleted)})
    def delete(self, note_id: str) -> bool:
        """Remove a note from the cache and delete its file.

        Tags the note carried stay in the tag index.

        Returns:
            True if the note existed, False for an unknown id.

        Raises:
            StorageError: If the file exists but cannot be removed. The
                cache is unchanged.
        """
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return False
            rel_path = note.path

        if rel_path:
            try:
                (self.root / rel_path).unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Failed to delete note file {rel_path}: {e}")
                raise StorageError(
                    f"Failed to delete note '{note.title}'",
                    operation="delete",
                    path=rel_path,
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e

        with self._lock:
            self._notes.pop(note_id, None)
            if rel_path and self._paths.get(rel_path) == note_id:
                del self._paths[rel_path]

        logger.info(f"Deleted note: {note.title} ({note_id})")
        return True

    def add_tag(self, note_id: str, tag: str) -> Optional[Note]:
        """Tag a cached note and save it. Returns None for an unknown id."""
        note = self.get(note_id)
        if note is None:
            return None
        note.add_tag(tag)
        return self.save(note)

    def remove_tag(self, note_id: str, tag: str) -> Optional[Note]:
        """Untag a cached note and save it. Returns None for an unknown id."""
        note = self.get(note_id)
        if note is None:
            return None
        note.remove_tag(tag)
        return self.save(note)

    # ------------------------------------------------------------------
    # Queries (never touch disk)
    # ------------------------------------------------------------------

    def get(self, note_id: str) -> Optional[Note]:
        """Get a copy of a cached note, or None if the id is unknown."""
        with self._lock:
            note = self._notes.get(note_id)
            return note.model_copy(deep=True) if note is not None else None

    def get_by_path(self, rel_path: str) -> Optional[Note]:
        """Get a copy of the note cached for a vault-relative path."""
        with self._lock:
            note_id = self._paths.get(rel_path)
            if note_id is None:
                return None
            return self._notes[note_id].model_copy(deep=True)

    def get_all(self) -> List[Note]:
        """Snapshot of all cached notes, in insertion order."""
        with self._lock:
            return [note.model_copy(deep=True) for note in self._notes.values()]

    def get_by_tag(self, tag: str) -> List[Note]:
        """Notes carrying exactly this tag."""
        return [note for note in self.get_all() if tag in note.tags]

    @traced("search", counts=lambda hits: {"hits": len(hits)})
    def search(self, query: str) -> List[Note]:
        """Case-insensitive substring search over title, content and tags."""
        q = query.lower()
        return [
            note
            for note in self.get_all()
            if q in note.title.lower()
            or q in note.content.lower()
            or any(q in tag.lower() for tag in note.tags)
        ]

    def get_all_tags(self) -> List[str]:
        """Every tag ever seen in the vault, sorted."""
        with self._lock:
            return self._tags.as_list()

    def count(self) -> int:
        with self._lock:
            return len(self._notes)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, note_id: object) -> bool:
        with self._lock:
            return note_id in self._notes

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _slug_path(self, title: str, suffix: str = "") -> str:
        return f"{slugify_title(title)}{suffix}{self.extension}"

    def _derive_path(self, note: Note, base_taken_on_disk: bool) -> str:
        """Pick a path from the note title. Caller holds the lock.

        When the plain slug belongs to another note (cached, being written,
        or an unreconciled file on disk) a short id suffix is appended.
        """
        candidate = self._slug_path(note.title)
        if base_taken_on_disk or self._path_taken(candidate, note.id):
            candidate = self._slug_path(
                note.title, f"-{note.id[:COLLISION_SUFFIX_LENGTH]}"
            )
            logger.debug(f"Path collision for '{note.title}', using {candidate}")
        return candidate

    def _path_taken(self, rel_path: str, note_id: str) -> bool:
        owner = self._paths.get(rel_path)
        if owner is not None and owner != note_id:
            return True
        return any(other != note_id for other in self._pending.get(rel_path, ()))

    def _release_pending(self, rel_path: str, note_id: str) -> None:
        writers = self._pending.get(rel_path)
        if not writers:
            return
        writers.remove(note_id)
        if not writers:
            del self._pending[rel_path]

    def _normalize_path(self, rel_path: str) -> str:
        """Validate an explicit note path and normalise its separators."""
        normalized = rel_path.replace(os.sep, "/") if os.sep != "/" else rel_path
        if not is_safe_relative_path(normalized):
            raise NoteValidationError(
                "Note path must be relative and stay inside the vault",
                field="path",
                value=rel_path,
                code=ErrorCode.PATH_TRAVERSAL_DETECTED,
            )
        return PurePosixPath(normalized).as_posix()

    @staticmethod
    def _write_file(target: Path, text: str) -> None:
        """Write a file atomically (temp file in the same directory + rename)."""
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=_TEMP_SUFFIX
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            os.chmod(temp_name, 0o644)
            os.replace(temp_name, target)
        except BaseException:
            try:
                os.unlink(temp_name)
            except OSError:
                pass
            raise

    def _remove_stale_file(self, rel_path: str) -> None:
        """Delete the file a note occupied before moving to a new path."""
        with self._lock:
            if rel_path in self._paths or rel_path in self._pending:
                return
        try:
            (self.root / rel_path).unlink(missing_ok=True)
            logger.debug(f"Removed old note file: {rel_path}")
        except OSError as e:
            logger.warning(f"Failed to remove old note file {rel_path}: {e}")
