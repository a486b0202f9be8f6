"""
DocStore Error Hierarchy — Structured exceptions for store operations.

Every error carries the context it was raised with (doc_id, revision_id,
operation, ...) and serializes to JSON so it can be written to the structured
event log unchanged.

Write errors are split so operators can tell "nothing happened" from
"partially happened":
    - DocIdValidationError / BodyReadError / DeadlineExceededError
      are raised before the Document Index is touched.
    - BackendUnavailableError before the pointer advance means nothing changed.
    - InconsistentWriteError means the pointer moved but the Revision Log
      entry is missing.

Hierarchy:
    DocStoreError
    ├── DocIdValidationError     — docId fails the allowed-character policy
    ├── BodyReadError            — payload source could not be fully drained
    ├── NotFoundError
    │   ├── DocumentNotFoundError
    │   └── RevisionNotFoundError
    ├── BackendUnavailableError  — transport/service failure on a backend call
    ├── ConditionFailedError     — backend conditional check did not hold
    ├── RevisionCollisionError   — generated (docId, id) key already exists
    ├── InconsistentWriteError   — pointer advanced, log write failed
    ├── DeadlineExceededError    — caller deadline expired before any mutation
    └── ConfigError              — invalid docstore.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CORE_FIELDS = ("doc_id", "revision_id", "operation")


class DocStoreError(Exception):
    """
    Base error for all DocStore failures.
    All context is kept on the instance and is JSON-serializable via to_dict().
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.doc_id: Optional[str] = context.get("doc_id")
        self.revision_id: Optional[str] = context.get("revision_id")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "doc_id": self.doc_id,
            "revision_id": self.revision_id,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in _CORE_FIELDS
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.doc_id:
            parts.append(f"doc_id={self.doc_id}")
        if self.revision_id:
            parts.append(f"revision_id={self.revision_id}")
        return " | ".join(parts)


class DocIdValidationError(DocStoreError):
    """Document id contains characters outside [a-z0-9._-]. Never reaches the backend."""

    def __init__(self, message: str, **context: Any):
        self.invalid_chars: Optional[str] = context.get("invalid_chars")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["invalid_chars"] = self.invalid_chars
        return d


class BodyReadError(DocStoreError):
    """The revision payload could not be read to the end."""
    pass


class NotFoundError(DocStoreError):
    """Point lookup returned no item."""
    pass


class DocumentNotFoundError(NotFoundError):
    """No Document Index entry for the requested id."""
    pass


class RevisionNotFoundError(NotFoundError):
    """No Revision Log entry for the requested (doc_id, revision_id)."""
    pass


class BackendUnavailableError(DocStoreError):
    """Transport or service failure on a backend call."""

    def __init__(self, message: str, **context: Any):
        self.backend: Optional[str] = context.get("backend")
        self.table: Optional[str] = context.get("table")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["backend"] = self.backend
        d["table"] = self.table
        return d


class ConditionFailedError(DocStoreError):
    """A conditional put/update found the item in a different state than expected."""

    def __init__(self, message: str, **context: Any):
        self.table: Optional[str] = context.get("table")
        self.key: Optional[Dict[str, Any]] = context.get("key")
        super().__init__(message, **context)


class RevisionCollisionError(DocStoreError):
    """
    The generated revision id already exists for this document.
    History is never overwritten; this indicates the id policy produced a duplicate.
    """
    pass


class InconsistentWriteError(DocStoreError):
    """
    The Document Index pointer was advanced but the Revision Log entry could
    not be written or confirmed. The index now names a revision that is absent
    from the log until complete_write() or repair() runs.

    ``pending`` holds the revision that should have been written (metadata +
    body) so phase 2 can be completed with the same id.
    """

    def __init__(self, message: str, **context: Any):
        self.pending: Optional[Any] = context.get("pending")
        self.previous_revision: Optional[str] = context.get("previous_revision")
        self.cause: Optional[str] = context.get("cause")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["previous_revision"] = self.previous_revision
        d["cause"] = self.cause
        d["context"].pop("pending", None)
        return d


class DeadlineExceededError(DocStoreError):
    """Caller deadline expired before the Document Index was touched."""

    def __init__(self, message: str, **context: Any):
        self.timeout_seconds: Optional[float] = context.get("timeout_seconds")
        super().__init__(message, **context)


class ConfigError(DocStoreError):
    """Configuration error — invalid docstore.yaml."""
    pass
