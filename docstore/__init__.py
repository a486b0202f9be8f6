"""
DocStore — Versioned document store over a key-value backend.

Callers write immutable revisions of named documents and read back either the
latest revision or any historical one. Revisions of a document form a
back-linked chain whose head is published by a single atomic pointer advance
on the Document Index.

Usage:
    from docstore import DocumentStore, MemoryBackend

    store = DocumentStore(MemoryBackend())
    rev = store.put_revision("readme", b"v1")
    store.get_doc("readme").read()
"""

from docstore.backends import MemoryBackend, create_backend
from docstore.store import DocumentStore, validate_doc_id

__version__ = "0.3.0"
__all__ = [
    "DocumentStore",
    "MemoryBackend",
    "create_backend",
    "validate_doc_id",
]
