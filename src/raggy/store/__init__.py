"""raggy store layer: registry, chunk ledger, metadata, flat index."""

from raggy.store.atomic import atomic_append_lines, atomic_write_bytes, atomic_write_text
from raggy.store.models import ChunkRecord, Document, IngestReport, SearchHit, StoreMeta
from raggy.store.progress import IngestProgress
from raggy.store.repository import Store

__all__ = [
    "ChunkRecord",
    "Document",
    "IngestProgress",
    "IngestReport",
    "SearchHit",
    "Store",
    "StoreMeta",
    "atomic_append_lines",
    "atomic_write_bytes",
    "atomic_write_text",
]
