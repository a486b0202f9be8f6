"""
DocStore core — revision chaining over a key-value backend.

    DocumentStore   — put/get revisions, enumerate, verify/repair
    DocumentIndex   — latest-revision pointers and their atomic advance
    RevisionLog     — immutable revision items
"""

from docstore.store.index import DocumentIndex
from docstore.store.models import (
    ChainReport,
    ChainStatus,
    DocPage,
    Document,
    Revision,
    RevisionMetadata,
    RevisionPage,
)
from docstore.store.revisions import RevisionLog
from docstore.store.service import DocumentStore
from docstore.store.validation import validate_doc_id

__all__ = [
    "ChainReport",
    "ChainStatus",
    "DocPage",
    "Document",
    "DocumentIndex",
    "DocumentStore",
    "Revision",
    "RevisionLog",
    "RevisionMetadata",
    "RevisionPage",
    "validate_doc_id",
]
