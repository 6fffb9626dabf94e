"""Service layer for note operations.

This is the surface an outer layer (HTTP handlers, a CLI, a UI) talks to.
Unknown ids come back as ``None`` (or ``False`` for deletes); only write
failures raise. The service emits no change events; broadcasting is the
caller's job.
"""

import logging
from typing import Any, Dict, List, Optional

from notevault.exceptions import ErrorCode, NoteValidationError
from notevault.models.schema import Note
from notevault.storage.vault_store import VaultStore

logger = logging.getLogger(__name__)

# Note attributes update_note() may set
UPDATABLE_FIELDS = (
    "title",
    "content",
    "tags",
    "links",
    "color",
    "is_pinned",
    "is_archived",
)

WELCOME_TITLE = "Welcome"
WELCOME_TAG = "welcome"
WELCOME_CONTENT = (
    "Welcome to your notes vault!\n\n"
    "This is your first note. You can:\n"
    "- Edit this note\n"
    "- Create new notes\n"
    "- Delete notes\n\n"
    "Files in the vault folder can also be edited with any text editor; "
    "changes are picked up automatically.\n"
)


class NoteService:
    """Note operations on top of a VaultStore."""

    def __init__(self, store: VaultStore) -> None:
        self.store = store

    def create_note(
        self,
        title: str,
        content: str = "",
        tags: Optional[List[str]] = None,
    ) -> Note:
        """Create and persist a new note.

        Args:
            title: Note title. Blank titles become "Untitled".
            content: Markdown body.
            tags: Initial tag names.

        Returns:
            The created note, with id, timestamps and path assigned.

        Raises:
            StorageError: If the note file cannot be written.
        """
        note = Note(title=title, content=content, tags=list(tags or []))
        created = self.store.save(note)
        logger.debug(f"Created note '{created.title}' ({created.id})")
        return created

    def get_note(self, note_id: str) -> Optional[Note]:
        """Retrieve a note by ID."""
        return self.store.get(note_id)

    def update_note(self, note_id: str, **fields: Any) -> Optional[Note]:
        """Update fields of an existing note.

        Accepted fields: ``title``, ``content``, ``tags``, ``links``,
        ``color``, ``is_pinned``, ``is_archived``. Fields passed as None
        are left unchanged. ``modified`` is refreshed.

        Returns:
            The updated note, or None if no note has this id.

        Raises:
            NoteValidationError: For an unknown field name.
            StorageError: If the note file cannot be written.
        """
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise NoteValidationError(
                f"Cannot update field(s): {', '.join(unknown)}",
                field=unknown[0],
                code=ErrorCode.NOTE_UNKNOWN_FIELD,
            )

        note = self.store.get(note_id)
        if note is None:
            return None

        for name, value in fields.items():
            if value is not None:
                setattr(note, name, value)
        note.touch()

        return self.store.save(note)

    def delete_note(self, note_id: str) -> bool:
        """Delete a note and its file. Returns False for an unknown id."""
        return self.store.delete(note_id)

    def list_notes(self) -> List[Note]:
        """Get all notes."""
        return self.store.get_all()

    def list_notes_by_tag(self, tag: str) -> List[Note]:
        """Get notes by tag."""
        return self.store.get_by_tag(tag)

    def search_notes(self, query: str) -> List[Note]:
        """Search titles, content and tags (case-insensitive)."""
        return self.store.search(query)

    def list_tags(self) -> List[str]:
        """Get all tags in the vault, sorted."""
        return self.store.get_all_tags()

    def add_tag_to_note(self, note_id: str, tag: str) -> Optional[Note]:
        """Add a tag to a note."""
        return self.store.add_tag(note_id, tag)

    def remove_tag_from_note(self, note_id: str, tag: str) -> Optional[Note]:
        """Remove a tag from a note."""
        return self.store.remove_tag(note_id, tag)

    def ensure_welcome_note(self) -> Optional[Note]:
        """Create a "Welcome" note if the vault holds no notes yet.

        Returns:
            The new note, or None when the vault was not empty.
        """
        if self.store.count() > 0:
            return None
        note = self.create_note(WELCOME_TITLE, WELCOME_CONTENT, tags=[WELCOME_TAG])
        logger.info(f"Seeded empty vault with welcome note at {note.path}")
        return note

    def get_stats(self) -> Dict[str, int]:
        """Counts for a status endpoint."""
        notes = self.store.get_all()
        return {
            "notes": len(notes),
            "tags": len(self.store.get_all_tags()),
            "pinned": sum(1 for n in notes if n.is_pinned),
            "archived": sum(1 for n in notes if n.is_archived),
        }
