"""Unit tests for docstore.engine.errors — Error hierarchy & serialization."""

import json

import pytest

from docstore.engine.errors import (
    BackendUnavailableError,
    BodyReadError,
    ConditionFailedError,
    ConfigError,
    DeadlineExceededError,
    DocIdValidationError,
    DocStoreError,
    DocumentNotFoundError,
    InconsistentWriteError,
    NotFoundError,
    RevisionCollisionError,
    RevisionNotFoundError,
)


class TestDocStoreError:
    """Base error class tests."""

    def test_basic_creation(self):
        err = DocStoreError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "DocStoreError"
        assert err.doc_id is None
        assert err.revision_id is None

    def test_context_fields(self):
        err = DocStoreError("fail", doc_id="readme", revision_id="r1", operation="put_revision")
        assert err.doc_id == "readme"
        assert err.revision_id == "r1"
        assert err.operation == "put_revision"

    def test_to_dict_moves_extra_context(self):
        err = DocStoreError("fail", doc_id="readme", attempts=3)
        d = err.to_dict()
        assert d["error_type"] == "DocStoreError"
        assert d["doc_id"] == "readme"
        assert d["context"] == {"attempts": "3"}
        assert "timestamp" in d

    def test_to_json_is_valid(self):
        err = DocStoreError("fail", doc_id="readme")
        parsed = json.loads(err.to_json())
        assert parsed["message"] == "fail"

    def test_repr_includes_ids(self):
        err = DocStoreError("fail", doc_id="readme", revision_id="r1")
        assert "doc_id=readme" in repr(err)
        assert "revision_id=r1" in repr(err)


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            DocIdValidationError,
            BodyReadError,
            NotFoundError,
            BackendUnavailableError,
            ConditionFailedError,
            RevisionCollisionError,
            InconsistentWriteError,
            DeadlineExceededError,
            ConfigError,
        ],
    )
    def test_subclasses_base(self, cls):
        assert issubclass(cls, DocStoreError)

    def test_not_found_family(self):
        assert issubclass(DocumentNotFoundError, NotFoundError)
        assert issubclass(RevisionNotFoundError, NotFoundError)
        assert not issubclass(DocumentNotFoundError, RevisionNotFoundError)


class TestSpecializedErrors:
    def test_backend_unavailable_fields(self):
        err = BackendUnavailableError("down", backend="redis", table="docs")
        d = err.to_dict()
        assert d["backend"] == "redis"
        assert d["table"] == "docs"

    def test_condition_failed_fields(self):
        err = ConditionFailedError("nope", table="docs", key={"id": "a"})
        assert err.table == "docs"
        assert err.key == {"id": "a"}

    def test_inconsistent_write_serializes_without_pending(self):
        pending = object()
        err = InconsistentWriteError(
            "half done",
            doc_id="readme",
            revision_id="r2",
            previous_revision="r1",
            cause="timeout",
            pending=pending,
        )
        assert err.pending is pending
        d = err.to_dict()
        assert d["previous_revision"] == "r1"
        assert d["cause"] == "timeout"
        assert "pending" not in d["context"]
        json.loads(err.to_json())

    def test_deadline_timeout_seconds(self):
        err = DeadlineExceededError("late", timeout_seconds=0.5)
        assert err.timeout_seconds == 0.5
