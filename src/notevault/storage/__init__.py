"""Storage layer for the note vault."""

from notevault.storage.frontmatter_codec import DecodeResult, FrontmatterCodec
from notevault.storage.tag_index import TagIndex
from notevault.storage.vault_store import LoadReport, ReconcileOutcome, VaultStore

__all__ = [
    "DecodeResult",
    "FrontmatterCodec",
    "LoadReport",
    "ReconcileOutcome",
    "TagIndex",
    "VaultStore",
]
