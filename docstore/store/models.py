"""
DocStore Models — Documents, revisions, pages and chain reports.

Document: Document Index entry (pointer to the latest revision).
RevisionMetadata: Immutable Revision Log entry without its body.
Revision: Read handle over a fetched revision (metadata + forward-only body stream).
DocPage / RevisionPage: One page of an enumeration with a continuation token.
ChainReport: Result of walking a document's back-link chain.
"""

from __future__ import annotations

import io
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, Field, field_validator

from docstore.engine.errors import DocIdValidationError
from docstore.store.validation import validate_doc_id


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Document Index entry
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """
    Document Index entry.

    ``latest_revision`` is mutated only by the atomic pointer advance.
    ``previous_revision`` is the value that advance displaced; repair uses it
    to roll back a pointer whose revision never reached the log.
    """

    id: str = Field(description="Document id, [a-z0-9._-]*")
    latest_revision: str = Field(default="", description="Most recently published revision id")
    previous_revision: str = Field(default="", description="Pointer value before the last advance")
    revision_count: int = Field(default=0, description="Revisions published through the pointer")
    updated_at: Optional[datetime] = Field(default=None, description="Time of the last advance")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        try:
            validate_doc_id(v)
        except DocIdValidationError as e:
            raise ValueError(e.message) from e
        return v

    @field_validator("updated_at", mode="before")
    @classmethod
    def parse_updated_at(cls, v: Any) -> Optional[datetime]:
        return _parse_timestamp(v)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Document":
        return cls(
            id=item["id"],
            latest_revision=item.get("latest_revision") or "",
            previous_revision=item.get("previous_revision") or "",
            revision_count=int(item.get("revision_count") or 0),
            updated_at=item.get("updated_at"),
        )


# ---------------------------------------------------------------------------
# Revision Log entry
# ---------------------------------------------------------------------------

class RevisionMetadata(BaseModel):
    """Metadata of an immutable revision. ``previous_revision`` is "" for the first one."""

    model_config = {"frozen": True}

    doc_id: str
    id: str
    previous_revision: str = ""
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> datetime:
        return _parse_timestamp(v)

    @property
    def is_first(self) -> bool:
        return not self.previous_revision

    def to_item(self, body: bytes) -> Dict[str, Any]:
        """Attributes stored in the Revision Log (key attributes excluded)."""
        return {
            "previous_revision": self.previous_revision,
            "timestamp": self.timestamp.isoformat(),
            "body": body,
        }


class Revision:
    """
    A fetched revision: metadata plus a forward-only stream over its body.

    The body is fully buffered when the revision is fetched; reading never
    goes back to the backend and the stream cannot be rewound. Fetch the
    revision again to read it from the start.
    """

    def __init__(self, metadata: RevisionMetadata, body: bytes):
        self._metadata = metadata
        self._body = bytes(body)
        self._stream = io.BytesIO(self._body)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Revision":
        metadata = RevisionMetadata(
            doc_id=item["doc_id"],
            id=item["id"],
            previous_revision=item.get("previous_revision") or "",
            timestamp=item["timestamp"],
        )
        return cls(metadata, item.get("body") or b"")

    @property
    def metadata(self) -> RevisionMetadata:
        return self._metadata

    @property
    def doc_id(self) -> str:
        return self._metadata.doc_id

    @property
    def id(self) -> str:
        return self._metadata.id

    @property
    def previous_revision(self) -> str:
        return self._metadata.previous_revision

    @property
    def timestamp(self) -> datetime:
        return self._metadata.timestamp

    @property
    def body(self) -> bytes:
        """The whole buffered payload, independent of the stream position."""
        return self._body

    @property
    def size(self) -> int:
        return len(self._body)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining when negative). b"" at the end."""
        return self._stream.read(size)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def iter_chunks(self, chunk_size: int = 8192) -> Iterator[bytes]:
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                break
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_chunks()

    def __repr__(self) -> str:
        return f"<Revision doc_id='{self.doc_id}' id='{self.id}' size={self.size}>"


# ---------------------------------------------------------------------------
# Enumeration pages
# ---------------------------------------------------------------------------

class DocPage(BaseModel):
    docs: List[Document] = Field(default_factory=list)
    next_token: str = ""
    more: bool = False


class RevisionPage(BaseModel):
    revisions: List[RevisionMetadata] = Field(default_factory=list)
    next_token: str = ""
    more: bool = False


# ---------------------------------------------------------------------------
# Chain verification
# ---------------------------------------------------------------------------

class ChainStatus(str, Enum):
    OK = "ok"
    DANGLING_LATEST = "dangling_latest"
    BROKEN_LINK = "broken_link"
    CYCLE = "cycle"


class ChainReport(BaseModel):
    """Outcome of walking previous_revision links from the latest pointer."""

    doc_id: str
    status: ChainStatus = ChainStatus.OK
    latest_revision: str = ""
    revisions: List[str] = Field(default_factory=list, description="Newest first")
    broken_revision: Optional[str] = None
    repaired: bool = False

    @property
    def length(self) -> int:
        return len(self.revisions)

    @property
    def ok(self) -> bool:
        return self.status == ChainStatus.OK
