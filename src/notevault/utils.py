"""Utility functions for the note vault."""

from pathlib import PurePosixPath

DEFAULT_SLUG = "untitled"


def slugify_title(title: str) -> str:
    """Turn a note title into a file stem.

    Lower-cases the title and replaces whitespace with hyphens. Path
    separators are replaced too, so a title can never address a file
    outside its own directory.

    Examples:
        "My First Note" -> "my-first-note"
        "Plans/2025" -> "plans-2025"
        "" -> "untitled"

    Args:
        title: The note title.

    Returns:
        A non-empty file stem (without extension).
    """
    result = title.strip().lower()
    result = result.replace("/", " ").replace("\\", " ")
    slug = "-".join(result.split())
    # A stem made only of dots would be "." or ".." once joined to a directory
    if not slug.strip("."):
        return DEFAULT_SLUG
    return slug


def is_safe_relative_path(path: str) -> bool:
    """Check that a vault-relative path stays inside the vault root.

    Rejects empty paths, absolute paths, backslash-separated paths and
    any ``..`` component.

    Example:
        >>> is_safe_relative_path("projects/alpha.md")
        True
        >>> is_safe_relative_path("../etc/passwd")
        False
    """
    if not path or "\\" in path:
        return False
    pure = PurePosixPath(path)
    if pure.is_absolute():
        return False
    return ".." not in pure.parts
