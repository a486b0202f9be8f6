"""
Document Index accessor — reads and atomically advances latest-revision pointers.

No locking happens here. The timestamp policy advances with one atomic
update_item that sets the new pointer, copies the old one into
previous_revision, bumps revision_count and returns the old attributes. The
sequence policy needs the current value to compute the next one, so it
loops: read, compute, conditional update expecting the value it read.

An advance whose reply is lost may still have been applied. Both advances
re-read the entry before giving up; when it already names the new id, the
advance is treated as done.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime
from typing import Optional, Tuple

from docstore.backends.base import Copy, Increment, KeyValueBackend
from docstore.engine.errors import (
    BackendUnavailableError,
    ConditionFailedError,
    DocumentNotFoundError,
)
from docstore.store.ids import SequenceIdGenerator
from docstore.store.models import DocPage, Document

logger = logging.getLogger("docstore.store.index")

# Marks a token payload; keeps the empty key representable as a non-empty token.
_TOKEN_MARK = "k:"


def encode_token(last_key: Optional[str]) -> str:
    if last_key is None:
        return ""
    raw = (_TOKEN_MARK + last_key).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_token(token: str) -> Optional[str]:
    if not token:
        return None
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        raise ValueError(f"Invalid continuation token {token!r}") from None
    if not raw.startswith(_TOKEN_MARK):
        raise ValueError(f"Invalid continuation token {token!r}")
    return raw[len(_TOKEN_MARK):]


class DocumentIndex:
    """Accessor for the Document Index table."""

    def __init__(self, backend: KeyValueBackend, table: str = "docs", advance_retries: int = 16):
        self._backend = backend
        self._table = table
        self._advance_retries = advance_retries

    @property
    def table(self) -> str:
        return self._table

    def fetch(self, doc_id: str) -> Document:
        """Point lookup. Raises DocumentNotFoundError when absent."""
        item = self._backend.get_item(self._table, {"id": doc_id})
        if item is None:
            raise DocumentNotFoundError(
                f"Document '{doc_id}' not found", doc_id=doc_id, operation="fetch"
            )
        return Document.from_item(item)

    def advance_pointer(self, doc_id: str, new_revision_id: str, now: datetime) -> Document:
        """
        Install ``new_revision_id`` as the latest revision in one atomic step.

        Returns the entry as it was before the advance (an empty Document when
        this call created it). If the advance was applied but its reply lost,
        the returned entry is rebuilt from the re-read one and its
        ``previous_revision`` is unknown ("").
        """
        try:
            old = self._backend.update_item(
                self._table,
                {"id": doc_id},
                {
                    "previous_revision": Copy("latest_revision"),
                    "latest_revision": new_revision_id,
                    "revision_count": Increment(),
                    "updated_at": now.isoformat(),
                },
            )
        except BackendUnavailableError as e:
            doc = self._confirm_advance(doc_id, new_revision_id, e)
            return Document(
                id=doc_id,
                latest_revision=doc.previous_revision,
                revision_count=max(doc.revision_count - 1, 0),
            )
        return Document.from_item({**old, "id": doc_id})

    def advance_sequence(
        self,
        doc_id: str,
        generator: SequenceIdGenerator,
        now: datetime,
    ) -> Tuple[str, str]:
        """
        Optimistic advance for the sequence policy.

        Returns (new_revision_id, previous_revision_id).
        """
        for attempt in range(1, self._advance_retries + 1):
            item = self._backend.get_item(self._table, {"id": doc_id}) or {}
            current = item.get("latest_revision") or ""
            new_id = generator.next_id(current)
            try:
                self._backend.update_item(
                    self._table,
                    {"id": doc_id},
                    {
                        "previous_revision": Copy("latest_revision"),
                        "latest_revision": new_id,
                        "revision_count": Increment(),
                        "updated_at": now.isoformat(),
                    },
                    condition={"latest_revision": current or None},
                )
                return new_id, current
            except ConditionFailedError:
                logger.debug(f"Pointer for '{doc_id}' moved under us (attempt {attempt})")
            except BackendUnavailableError as e:
                self._confirm_advance(doc_id, new_id, e, previous=current)
                return new_id, current

        raise BackendUnavailableError(
            f"Could not advance '{doc_id}' after {self._advance_retries} contended attempts",
            doc_id=doc_id,
            operation="advance_sequence",
            table=self._table,
        )

    def _confirm_advance(
        self,
        doc_id: str,
        new_revision_id: str,
        error: BackendUnavailableError,
        previous: Optional[str] = None,
    ) -> Document:
        """
        Decide the outcome of an advance that raised ``error``.

        Returns the re-read entry when it names ``new_revision_id``; otherwise
        re-raises ``error``, meaning the pointer was not moved by this call.
        ``previous``, when given, must also match the displaced pointer.
        """
        try:
            doc = self.fetch(doc_id)
        except (BackendUnavailableError, DocumentNotFoundError):
            raise error
        if doc.latest_revision != new_revision_id:
            raise error
        if previous is not None and doc.previous_revision != previous:
            raise error
        logger.warning(
            f"Advance of '{doc_id}' to '{new_revision_id}' was applied "
            f"although the backend reported: {error.message}"
        )
        return doc

    def restore_previous(
        self, doc_id: str, revision_id: str, previous_revision: str, now: datetime
    ) -> bool:
        """
        Undo the bookkeeping of an advance that collided with its own id.

        The colliding advance copied ``revision_id`` into previous_revision and
        counted itself; put back the displaced value while the pointer still
        names ``revision_id``. Returns False when another writer moved it.
        """
        try:
            self._backend.update_item(
                self._table,
                {"id": doc_id},
                {
                    "previous_revision": previous_revision or None,
                    "revision_count": Increment(-1),
                    "updated_at": now.isoformat(),
                },
                condition={"latest_revision": revision_id},
            )
        except ConditionFailedError:
            return False
        return True

    def rollback_pointer(
        self,
        doc_id: str,
        broken_revision: str,
        restore_latest: str,
        restore_previous: str,
        now: datetime,
    ) -> bool:
        """
        Point the document back at ``restore_latest`` if it still names
        ``broken_revision``. Returns False when another writer got there first.
        """
        try:
            self._backend.update_item(
                self._table,
                {"id": doc_id},
                {
                    "latest_revision": restore_latest or None,
                    "previous_revision": restore_previous or None,
                    "revision_count": Increment(-1),
                    "updated_at": now.isoformat(),
                },
                condition={"latest_revision": broken_revision},
            )
        except ConditionFailedError:
            return False
        return True

    def scan(self, token: str = "", limit: Optional[int] = None) -> DocPage:
        """One page of the Document Index, ordered by id."""
        page = self._backend.scan(self._table, start_after=decode_token(token), limit=limit)
        return DocPage(
            docs=[Document.from_item(item) for item in page.items],
            next_token=encode_token(page.last_key) if page.more else "",
            more=page.more,
        )
