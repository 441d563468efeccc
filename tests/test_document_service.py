"""Tests for the remote document store and its error classification.

Covers:
- Documents are scoped by company id
- Writes re-deliver snapshots to live subscribers
- Cross-company writes are permission-denied
- Reserved keys never land in the document body
- SQLAlchemy failures map to the right error codes
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import exc as sa_exc

from app.models.document import Document
from app.services.document_service import (
    DocumentService,
    ErrorCode,
    RemoteError,
    classify_error,
)


@pytest.fixture
def service():
    return DocumentService()


class TestScoping:

    def test_subscribe_only_sees_own_company(self, service, seed_data):
        company_id = seed_data["company_id"]
        service.create("sites", company_id, {"name": "Mine"})

        other = MagicMock()
        service.subscribe("sites", "comp_other", other, MagicMock())
        other.assert_called_once_with([])

        mine = MagicMock()
        service.subscribe("sites", company_id, mine, MagicMock())
        records = mine.call_args[0][0]
        assert [r["name"] for r in records] == ["Mine"]
        assert records[0]["company_id"] == company_id

    def test_collections_are_separate(self, service, seed_data):
        company_id = seed_data["company_id"]
        service.create("sites", company_id, {"name": "Site"})
        service.create("leads", company_id, {"contact_name": "Lead"})

        assert [r.get("name") for r in service.fetch("sites", company_id)] == ["Site"]
        assert [r.get("contact_name") for r in service.fetch("leads", company_id)] == ["Lead"]

    def test_update_from_another_company_is_denied(self, service, seed_data):
        doc_id = service.create("sites", seed_data["company_id"], {"name": "A"})

        with pytest.raises(RemoteError) as exc:
            service.update("sites", "comp_other", doc_id, {"name": "B"})

        assert exc.value.code == ErrorCode.PERMISSION_DENIED

    def test_update_missing_document_is_not_found(self, service, seed_data):
        with pytest.raises(RemoteError) as exc:
            service.update("sites", seed_data["company_id"], "nope", {"name": "B"})
        assert exc.value.code == ErrorCode.NOT_FOUND

    def test_delete_missing_document_is_a_no_op(self, service, seed_data):
        service.delete("sites", seed_data["company_id"], "nope")


class TestWrites:

    def test_create_strips_reserved_keys(self, service, seed_data, db_session):
        doc_id = service.create(
            "sites",
            seed_data["company_id"],
            {"name": "A", "id": "forged", "company_id": "comp_other", "origin": "local"},
            created_by=seed_data["user_id"],
        )

        doc = db_session.get(Document, doc_id)
        assert doc.data == {"name": "A"}
        assert doc.company_id == seed_data["company_id"]
        assert doc.created_by == seed_data["user_id"]

    def test_update_merges(self, service, seed_data):
        company_id = seed_data["company_id"]
        doc_id = service.create("sites", company_id, {"name": "A", "budget": 10})
        service.update("sites", company_id, doc_id, {"budget": 20})

        record = service.fetch("sites", company_id)[0]
        assert record["name"] == "A"
        assert record["budget"] == 20

    def test_writes_are_broadcast_to_subscribers(self, service, seed_data):
        company_id = seed_data["company_id"]
        snapshots = []
        subscription = service.subscribe("sites", company_id, snapshots.append, MagicMock())

        doc_id = service.create("sites", company_id, {"name": "A"})
        service.delete("sites", company_id, doc_id)

        assert [len(s) for s in snapshots] == [0, 1, 0]

        subscription.unsubscribe()
        assert service.listener_count("sites", company_id) == 0

    def test_subscribe_requires_company(self, service):
        with pytest.raises(RemoteError) as exc:
            service.subscribe("sites", None, MagicMock(), MagicMock())
        assert exc.value.code == ErrorCode.SETUP_FAILED

    def test_query_failure_goes_to_on_error(self, service, seed_data):
        on_snapshot, on_error = MagicMock(), MagicMock()
        failure = sa_exc.OperationalError("SELECT", {}, Exception("connection refused"))

        with patch.object(DocumentService, "_query", side_effect=failure):
            service.subscribe("sites", seed_data["company_id"], on_snapshot, on_error)

        on_snapshot.assert_not_called()
        assert on_error.call_args[0][0].code == ErrorCode.UNAVAILABLE


class TestClassification:

    @pytest.mark.parametrize("exc, code", [
        (sa_exc.OperationalError("SELECT", {}, Exception("no such table: documents")),
         ErrorCode.NOT_FOUND),
        (sa_exc.ProgrammingError("SELECT", {}, Exception("permission denied for table documents")),
         ErrorCode.PERMISSION_DENIED),
        (sa_exc.OperationalError("SELECT", {}, Exception("table documents has no column named data")),
         ErrorCode.FAILED_PRECONDITION),
        (sa_exc.OperationalError("SELECT", {}, Exception("could not connect to server")),
         ErrorCode.UNAVAILABLE),
        (NotImplementedError("JSON not supported"), ErrorCode.UNIMPLEMENTED),
        (sa_exc.IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")),
         ErrorCode.INVALID_ARGUMENT),
        (ValueError("something else"), ErrorCode.UNKNOWN),
    ])
    def test_codes(self, exc, code):
        assert classify_error(exc).code == code

    def test_recoverable_set(self):
        assert RemoteError(ErrorCode.PERMISSION_DENIED).recoverable is True
        assert RemoteError(ErrorCode.SETUP_FAILED).recoverable is True
        assert RemoteError(ErrorCode.INVALID_ARGUMENT).recoverable is False
        assert RemoteError(ErrorCode.UNKNOWN).recoverable is False

    def test_remote_error_passes_through(self):
        error = RemoteError(ErrorCode.NOT_FOUND, "gone")
        assert classify_error(error) is error
