"""Revision Log accessor — immutable (doc_id, id) items, written insert-if-absent."""

from __future__ import annotations

from typing import Optional

from docstore.backends.base import KEY_SEPARATOR, KeyValueBackend
from docstore.engine.errors import ConditionFailedError, RevisionCollisionError, RevisionNotFoundError
from docstore.store.index import decode_token, encode_token
from docstore.store.models import Revision, RevisionMetadata, RevisionPage


class RevisionLog:
    """Accessor for the Revision Log table."""

    def __init__(self, backend: KeyValueBackend, table: str = "revisions"):
        self._backend = backend
        self._table = table

    @property
    def table(self) -> str:
        return self._table

    @staticmethod
    def _key(doc_id: str, revision_id: str):
        return {"doc_id": doc_id, "id": revision_id}

    def lookup(self, doc_id: str, revision_id: str) -> Revision:
        """Point lookup by composite key. Raises RevisionNotFoundError."""
        item = self._backend.get_item(self._table, self._key(doc_id, revision_id))
        if item is None:
            raise RevisionNotFoundError(
                f"Revision '{revision_id}' of '{doc_id}' not found",
                doc_id=doc_id,
                revision_id=revision_id,
                operation="get_revision",
            )
        return Revision.from_item(item)

    def exists(self, doc_id: str, revision_id: str) -> bool:
        return self._backend.get_item(self._table, self._key(doc_id, revision_id)) is not None

    def insert(self, metadata: RevisionMetadata, body: bytes) -> None:
        """
        Persist a new revision. Never overwrites: an existing item at the same
        key raises RevisionCollisionError.
        """
        try:
            self._backend.put_item(
                self._table,
                self._key(metadata.doc_id, metadata.id),
                metadata.to_item(body),
                if_not_exists=True,
            )
        except ConditionFailedError as e:
            raise RevisionCollisionError(
                f"Revision '{metadata.id}' of '{metadata.doc_id}' already exists",
                doc_id=metadata.doc_id,
                revision_id=metadata.id,
                operation="insert_revision",
            ) from e

    def matches(self, metadata: RevisionMetadata, body: bytes) -> bool:
        """True if the stored item at metadata's key is exactly this revision."""
        item = self._backend.get_item(self._table, self._key(metadata.doc_id, metadata.id))
        if item is None:
            return False
        stored = Revision.from_item(item)
        return stored.metadata == metadata and stored.read() == bytes(body)

    def scan(self, doc_id: str, token: str = "", limit: Optional[int] = None) -> RevisionPage:
        """One page of a document's revisions, ordered by revision id."""
        page = self._backend.scan(
            self._table,
            start_after=decode_token(token),
            limit=limit,
            prefix=f"{doc_id}{KEY_SEPARATOR}",
        )
        return RevisionPage(
            revisions=[Revision.from_item(item).metadata for item in page.items],
            next_token=encode_token(page.last_key) if page.more else "",
            more=page.more,
        )
