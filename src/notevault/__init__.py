"""
NoteVault - a file-backed note store with an in-memory index.

Notes live as individual markdown files with a frontmatter header under a
vault directory. The package keeps them cached in memory for fast lookup by
id, tag, or text, and runs a background reconciler that picks up edits made
to the files outside the running process.

This version uses synchronous operations and a single background thread.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notevault")
except PackageNotFoundError:
    __version__ = "0.3.0"
