"""Document id policy: lowercase letters, digits, '.', '_' and '-' only."""

from __future__ import annotations

import re

from docstore.engine.errors import DocIdValidationError

VALID_DOC_ID = re.compile(r"[a-z0-9._-]*")


def validate_doc_id(doc_id: str) -> None:
    """
    Raise DocIdValidationError unless ``doc_id`` matches ^[a-z0-9._-]*$.

    Uses fullmatch so a trailing newline is rejected too.
    """
    if not isinstance(doc_id, str):
        raise DocIdValidationError(
            f"Document id must be a string, got {type(doc_id).__name__}",
            operation="validate_doc_id",
        )
    if VALID_DOC_ID.fullmatch(doc_id):
        return

    invalid = "".join(sorted({c for c in doc_id if not VALID_DOC_ID.fullmatch(c)}))
    raise DocIdValidationError(
        f"Illegal characters in docId {doc_id!r}",
        doc_id=doc_id,
        invalid_chars=invalid,
        operation="validate_doc_id",
    )
