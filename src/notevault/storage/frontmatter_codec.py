"""Frontmatter serialization for vault notes.

Handles conversion between Note domain objects and the on-disk text
format: a ``---`` delimited YAML header followed by the free-form
markdown body.

::

    ---
    title: Weekly review
    tags: [planning, review]
    created: 2025-01-06T09:30:00+00:00
    modified: 2025-01-06T10:02:11.201934+00:00
    color: default
    pinned: false
    archived: false
    links: []
    ---

    Body text...

The header is split off with a regex rather than handed to a frontmatter
library so the body keeps its exact whitespace. Header values that YAML
would read back as something else (``yes``, ``123``, ``a, b``, leading
spaces...) are quoted on the way out.

Decoding never raises. Malformed values fall back to the Note defaults
and are reported through :class:`DecodeResult`.
"""
import datetime
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from notevault.models.schema import DEFAULT_TITLE, Note, ensure_timezone_aware

logger = logging.getLogger(__name__)

# Header block at the very start of the text. Group 1 holds the YAML.
_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE
)
# Inline #tags (not markdown headings, code-spans or URL fragments)
_HASHTAG_RE = re.compile(r"(?<![`\w/#])#([\w/-]+)")
# First level-one heading of a freeform note
_HEADING_RE = re.compile(r"^[ \t]*# (.+)$", re.MULTILINE)

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"
_LINE_BREAKS = "\r\n\x85\u2028\u2029"

_TRUE_VALUES = ("true", "yes", "1")
_FALSE_VALUES = ("false", "no", "0")

# Pseudo field reported when the header is not a readable YAML mapping
HEADER_FIELD = "header"


def _without_timestamps(resolvers: Dict[str, list]) -> Dict[str, list]:
    return {
        first: [(tag, regexp) for tag, regexp in entries if tag != _TIMESTAMP_TAG]
        for first, entries in resolvers.items()
    }


class _HeaderLoader(yaml.SafeLoader):
    """SafeLoader that hands timestamps back as plain strings."""


class _HeaderDumper(yaml.SafeDumper):
    """SafeDumper that writes ISO timestamps unquoted and keeps every value on one line."""


_HeaderLoader.yaml_implicit_resolvers = _without_timestamps(
    yaml.SafeLoader.yaml_implicit_resolvers
)
_HeaderDumper.yaml_implicit_resolvers = _without_timestamps(
    yaml.SafeDumper.yaml_implicit_resolvers
)


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    # Quoted scalars spanning lines would continue at column 0, where a
    # "---" line ends the header. Double quotes escape the breaks instead.
    style = '"' if any(ch in value for ch in _LINE_BREAKS) else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_HeaderDumper.add_representer(str, _represent_str)


@dataclass
class DecodeResult:
    """Outcome of decoding a note file.

    Attributes:
        note: The decoded note. Always populated.
        has_frontmatter: False when the text had no header block and was
            treated as freeform markdown.
        degraded_fields: Header keys whose values were malformed and were
            replaced by defaults (``"header"`` when the whole block was
            unreadable).
    """

    note: Note
    has_frontmatter: bool
    degraded_fields: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_fields)


class FrontmatterCodec:
    """Encodes and decodes notes as frontmatter + markdown text."""

    def __init__(self, extract_hashtags: bool = True):
        """
        Args:
            extract_hashtags: Scan freeform (header-less) files for
                ``#hashtag`` tokens and a ``# Heading`` title.
        """
        self.extract_hashtags = extract_hashtags

    def encode(self, note: Note) -> str:
        """Convert a Note to its on-disk text form.

        Fields are always written in the same order; booleans render as
        ``true``/``false`` and empty lists as ``[]``.
        """
        header = {
            "title": note.title,
            "tags": list(note.tags),
            "created": note.created.isoformat(),
            "modified": note.modified.isoformat(),
            "color": note.color,
            "pinned": note.is_pinned,
            "archived": note.is_archived,
            "links": list(note.links),
        }
        block = yaml.dump(
            header,
            Dumper=_HeaderDumper,
            sort_keys=False,
            default_flow_style=None,
            allow_unicode=True,
            width=float("inf"),
        )
        return f"---\n{block}---\n\n{note.content}"

    def decode(self, text: str, path: Optional[str] = None) -> Note:
        """Parse note text into a Note. See :meth:`decode_with_status`."""
        return self.decode_with_status(text, path).note

    def decode_with_status(self, text: str, path: Optional[str] = None) -> DecodeResult:
        """Parse note text, reporting whether anything had to be defaulted.

        Args:
            text: Full file contents.
            path: Vault-relative path the text was read from.

        Returns:
            A DecodeResult. The note always gets a fresh id; callers that
            track notes by path are responsible for keeping ids stable.
        """
        if text.startswith("\ufeff"):
            text = text[1:]

        match = _FRONTMATTER_RE.match(text)
        if not match:
            return DecodeResult(note=self._decode_freeform(text, path), has_frontmatter=False)

        body = text[match.end():]
        # Drop the single blank separator line written by encode()
        if body.startswith("\r\n"):
            body = body[2:]
        elif body.startswith("\n"):
            body = body[1:]

        degraded: List[str] = []
        metadata = self._load_header(match.group(1))
        if metadata is None:
            degraded.append(HEADER_FIELD)
            metadata = {}

        fields: Dict[str, Any] = {"content": body, "path": path}
        fields["title"] = _as_text(metadata.get("title")) or DEFAULT_TITLE

        for key in ("tags", "links"):
            if key in metadata:
                fields[key] = _as_list(metadata[key])

        color = _as_text(metadata.get("color"))
        if color:
            fields["color"] = color

        for key, attr in (("pinned", "is_pinned"), ("archived", "is_archived")):
            if key not in metadata:
                continue
            value = _as_bool(metadata[key])
            if value is None:
                degraded.append(key)
            else:
                fields[attr] = value

        for key in ("created", "modified"):
            if key not in metadata:
                continue
            timestamp = _as_timestamp(metadata[key])
            if timestamp is None:
                degraded.append(key)
            else:
                fields[key] = timestamp

        if degraded:
            logger.debug(
                f"Defaulted malformed header fields {degraded} in {path or '<text>'}"
            )

        return DecodeResult(
            note=Note(**fields), has_frontmatter=True, degraded_fields=degraded
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load_header(block: str) -> Optional[Dict[Any, Any]]:
        """Parse the header YAML. None when it is not a readable mapping."""
        try:
            loaded = yaml.load(block, Loader=_HeaderLoader)
        except yaml.YAMLError as e:
            logger.debug(f"Unreadable frontmatter: {e}")
            return None
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            return None
        return loaded

    def _decode_freeform(self, text: str, path: Optional[str]) -> Note:
        """Treat the whole text as the body of an untitled note."""
        title = DEFAULT_TITLE
        tags: List[str] = []
        if self.extract_hashtags:
            heading = _HEADING_RE.search(text)
            if heading and heading.group(1).strip():
                title = heading.group(1).strip()
            tags = [m.group(1) for m in _HASHTAG_RE.finditer(text)]
        return Note(title=title, content=text, tags=tags, path=path)


def _as_text(value: Any) -> str:
    """Header scalar as a string; hand-written ``title: 2025`` reads as "2025"."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_list(value: Any) -> List[str]:
    """Accept ``[a, b]`` sequences as well as a bare ``a, b`` string."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [_as_text(item) for item in value if item is not None]
    if value is None:
        return []
    return [_as_text(value)]


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    lowered = _as_text(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def _as_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Parse an ISO-8601 timestamp, returning None when malformed."""
    if isinstance(value, datetime.datetime):
        return ensure_timezone_aware(value)
    text = _as_text(value).strip()
    # fromisoformat() only accepts a "Z" suffix from Python 3.11 on
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return ensure_timezone_aware(datetime.datetime.fromisoformat(text))
    except ValueError:
        return None


_default_codec = FrontmatterCodec()


def encode_note(note: Note) -> str:
    """Encode a note with the default codec."""
    return _default_codec.encode(note)


def decode_note(text: str, path: Optional[str] = None) -> Note:
    """Decode note text with the default codec."""
    return _default_codec.decode(text, path)
