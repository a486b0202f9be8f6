"""
DocStore Service — Publish and read revisions of named documents.

Write protocol (put_revision):
1. Validate the doc id (no backend contact on failure)
2. Buffer the whole payload
3. Generate a revision id
4. Atomically advance the Document Index pointer, learning the previous one
5. Build the revision metadata (timestamp = advance time)
6. Insert the Revision Log item, never overwriting
7. Return the revision

Step 4 is the publish point and the only coordination between writers.
If step 6 fails after step 4, the index names a revision the log does not
have. That window is reported as InconsistentWriteError after the configured
same-id retries, and can be closed later with complete_write() or repair().

Read protocol: fetch the index entry, follow latest_revision into the log.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from docstore.backends.base import KeyValueBackend
from docstore.engine import logging as event_log
from docstore.engine.config import StoreConfig
from docstore.engine.errors import (
    BackendUnavailableError,
    BodyReadError,
    DeadlineExceededError,
    DocumentNotFoundError,
    InconsistentWriteError,
    RevisionCollisionError,
)
from docstore.store.ids import SequenceIdGenerator, create_id_generator
from docstore.store.index import DocumentIndex
from docstore.store.integrity import ChainVerifier
from docstore.store.models import ChainReport, DocPage, Revision, RevisionMetadata, RevisionPage
from docstore.store.revisions import RevisionLog
from docstore.store.validation import validate_doc_id

logger = logging.getLogger("docstore.store.service")


class Deadline:
    """Caller deadline, checked at backend round-trip boundaries."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._expires = time.monotonic() + timeout if timeout is not None else None

    def expired(self) -> bool:
        return self._expires is not None and time.monotonic() >= self._expires


def buffer_body(body: Any) -> bytes:
    """Drain ``body`` (bytes-like, str or readable) into memory."""
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    if not hasattr(body, "read"):
        raise BodyReadError(
            f"Unsupported body type {type(body).__name__}", operation="put_revision"
        )

    chunks = []
    try:
        while True:
            chunk = body.read(8192)
            if not chunk:
                break
            chunks.append(chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk))
    except (OSError, ValueError) as e:
        raise BodyReadError(f"Could not read revision body: {e}", operation="put_revision") from e
    return b"".join(chunks)


class DocumentStore:
    """
    Versioned document store over a KeyValueBackend.

    Stateless apart from its collaborators; safe to share between threads.
    """

    def __init__(self, backend: KeyValueBackend, config: Optional[StoreConfig] = None):
        self._config = config or StoreConfig()
        self._backend = backend
        self._index = DocumentIndex(
            backend,
            table=self._config.doc_table,
            advance_retries=self._config.advance_retries,
        )
        self._log = RevisionLog(backend, table=self._config.revision_table)
        self._ids = create_id_generator(self._config.id_policy, self._config.id_suffix_bytes)
        self._verifier = ChainVerifier(self._index, self._log)

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    @property
    def index(self) -> DocumentIndex:
        return self._index

    @property
    def revision_log(self) -> RevisionLog:
        return self._log

    # -------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------

    def put_revision(self, doc_id: str, body: Any, timeout: Optional[float] = None) -> Revision:
        """
        Publish a new revision of ``doc_id``. Creates the document on first write.

        Raises:
            DocIdValidationError, BodyReadError, DeadlineExceededError —
                nothing was written.
            BackendUnavailableError — the pointer advance did not take effect;
                nothing was written. An advance that was applied but whose
                reply was lost is detected by re-reading the index and the
                write carries on.
            RevisionCollisionError — the generated id already exists.
            InconsistentWriteError — the pointer moved but the log entry is missing.
        """
        started = time.monotonic()
        deadline = Deadline(timeout)
        validate_doc_id(doc_id)
        payload = buffer_body(body)

        if deadline.expired():
            raise DeadlineExceededError(
                f"Deadline expired before publishing '{doc_id}'",
                doc_id=doc_id,
                operation="put_revision",
                timeout_seconds=timeout,
            )

        now = datetime.now(timezone.utc)
        if isinstance(self._ids, SequenceIdGenerator):
            revision_id, previous = self._index.advance_sequence(doc_id, self._ids, now)
        else:
            revision_id = self._ids.new_id()
            displaced = self._index.advance_pointer(doc_id, revision_id, now)
            previous = displaced.latest_revision
            if previous == revision_id:
                try:
                    restored = self._index.restore_previous(
                        doc_id, revision_id, displaced.previous_revision, now
                    )
                except BackendUnavailableError as e:
                    logger.warning(f"Could not restore index entry of '{doc_id}': {e.message}")
                    restored = False
                event_log.log(event_log.log_revision_collision(doc_id, revision_id, stage="advance"))
                raise RevisionCollisionError(
                    f"Revision id '{revision_id}' of '{doc_id}' was already the latest",
                    doc_id=doc_id,
                    revision_id=revision_id,
                    operation="put_revision",
                    index_restored=restored,
                )

        metadata = RevisionMetadata(
            doc_id=doc_id,
            id=revision_id,
            previous_revision=previous,
            timestamp=now,
        )

        if deadline.expired():
            raise self._inconsistent(
                metadata, payload, cause="deadline expired after pointer advance", attempts=0
            )

        self._write_log_entry(metadata, payload)

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.info(
            f"Published {doc_id}@{revision_id} (previous={previous or '-'}, {len(payload)} bytes)"
        )
        event_log.log(
            event_log.log_revision_published(
                doc_id, revision_id, previous, len(payload), duration_ms
            )
        )
        return Revision(metadata, payload)

    def _write_log_entry(self, metadata: RevisionMetadata, payload: bytes) -> None:
        """
        Phase 2 of a write. Backend failures are retried with the same id; a
        collision on a retry that finds our own item means an earlier attempt
        landed.
        """
        attempts = 0
        last_error: Optional[Exception] = None
        while attempts <= self._config.log_write_retries:
            attempts += 1
            try:
                self._log.insert(metadata, payload)
                return
            except RevisionCollisionError:
                if last_error is not None and self._confirm(metadata, payload):
                    return
                event_log.log(
                    event_log.log_revision_collision(metadata.doc_id, metadata.id, stage="log_write")
                )
                raise
            except BackendUnavailableError as e:
                last_error = e
                logger.warning(
                    f"Log write for {metadata.doc_id}@{metadata.id} failed "
                    f"(attempt {attempts}): {e.message}"
                )

        raise self._inconsistent(metadata, payload, cause=str(last_error), attempts=attempts)

    def _confirm(self, metadata: RevisionMetadata, payload: bytes) -> bool:
        try:
            return self._log.matches(metadata, payload)
        except BackendUnavailableError:
            return False

    def _inconsistent(
        self, metadata: RevisionMetadata, payload: bytes, cause: str, attempts: int
    ) -> InconsistentWriteError:
        event_log.log(
            event_log.log_inconsistent_write(
                metadata.doc_id, metadata.id, metadata.previous_revision, cause, attempts
            )
        )
        logger.error(
            f"Inconsistent write: '{metadata.doc_id}' now points at missing revision "
            f"'{metadata.id}' ({cause})"
        )
        return InconsistentWriteError(
            f"Pointer for '{metadata.doc_id}' advanced to '{metadata.id}' "
            f"but the revision was not stored: {cause}",
            doc_id=metadata.doc_id,
            revision_id=metadata.id,
            previous_revision=metadata.previous_revision,
            operation="put_revision",
            cause=cause,
            pending=Revision(metadata, payload),
        )

    def complete_write(self, pending: Revision) -> Revision:
        """
        Finish phase 2 of a write reported by InconsistentWriteError, reusing
        the id the pointer already names. Idempotent.
        """
        payload = pending.body
        try:
            self._log.insert(pending.metadata, payload)
        except RevisionCollisionError:
            if not self._log.matches(pending.metadata, payload):
                raise
        logger.info(f"Completed pending write {pending.doc_id}@{pending.id}")
        return Revision(pending.metadata, payload)

    # -------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------

    def get_doc(self, doc_id: str) -> Revision:
        """Latest revision of ``doc_id``."""
        validate_doc_id(doc_id)
        doc = self._index.fetch(doc_id)
        if not doc.latest_revision:
            raise DocumentNotFoundError(
                f"Document '{doc_id}' has no published revision",
                doc_id=doc_id,
                operation="get_doc",
            )
        return self._log.lookup(doc_id, doc.latest_revision)

    def get_revision(self, doc_id: str, revision_id: str) -> Revision:
        """A specific revision of ``doc_id``."""
        validate_doc_id(doc_id)
        return self._log.lookup(doc_id, revision_id)

    # -------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------

    def list_docs(self, token: str = "", limit: Optional[int] = None) -> DocPage:
        return self._index.scan(token, limit)

    def list_revisions(self, doc_id: str, token: str = "", limit: Optional[int] = None) -> RevisionPage:
        validate_doc_id(doc_id)
        return self._log.scan(doc_id, token, limit)

    # -------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------

    def verify(self, doc_id: str) -> ChainReport:
        validate_doc_id(doc_id)
        return self._verifier.verify(doc_id)

    def repair(self, doc_id: str) -> ChainReport:
        validate_doc_id(doc_id)
        return self._verifier.repair(doc_id)

    def __repr__(self) -> str:
        return f"<DocumentStore backend='{self._backend.name}' policy='{self._config.id_policy}'>"
