"""Sorted index of every tag seen in the vault."""
import bisect
from typing import Iterable, Iterator, List


class TagIndex:
    """Deduplicated, sorted collection of tag names.

    The index grows as notes are loaded, saved or reconciled. It is never
    pruned: a tag stays listed after the last note carrying it drops it.

    Not thread-safe on its own; the owning ``VaultStore`` guards it with
    the same lock as the note map.
    """

    def __init__(self, tags: Iterable[str] = ()):
        self._tags: List[str] = []
        self.update(tags)

    def add(self, tag: str) -> bool:
        """Insert a tag if absent.

        Returns:
            True if the tag was new, False if it was already indexed.
        """
        pos = bisect.bisect_left(self._tags, tag)
        if pos < len(self._tags) and self._tags[pos] == tag:
            return False
        self._tags.insert(pos, tag)
        return True

    def update(self, tags: Iterable[str]) -> int:
        """Insert several tags. Returns how many were new."""
        return sum(1 for tag in tags if tag and self.add(tag))

    def as_list(self) -> List[str]:
        """Return a sorted copy of the indexed tags."""
        return list(self._tags)

    def __contains__(self, tag: object) -> bool:
        if not isinstance(tag, str):
            return False
        pos = bisect.bisect_left(self._tags, tag)
        return pos < len(self._tags) and self._tags[pos] == tag

    def __iter__(self) -> Iterator[str]:
        return iter(self.as_list())

    def __len__(self) -> int:
        return len(self._tags)

    def __repr__(self) -> str:
        return f"TagIndex({self._tags!r})"
