"""Document service — the remote document store.

Stores records of every collection as Document rows scoped by company id
and exposes the four operations the collection stores need:

    subscribe(collection, company_id, on_snapshot, on_error)
    create(collection, company_id, record, created_by) -> id
    update(collection, company_id, doc_id, changes)
    delete(collection, company_id, doc_id)

Subscriptions are live: after every write through this service, each
subscriber of the same (collection, company) receives the full current
snapshot. Failures are raised (or delivered to on_error) as RemoteError
with a classified code; the stores decide what to do with them.

Write functions commit: the remote store is its own unit of work.
"""

import logging
import threading
from datetime import datetime, timezone

from flask import has_app_context
from sqlalchemy import exc as sa_exc

from app.extensions import db
from app.models.document import Document

logger = logging.getLogger(__name__)


class ErrorCode:
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    UNAVAILABLE = "unavailable"
    FAILED_PRECONDITION = "failed-precondition"
    UNIMPLEMENTED = "unimplemented"
    SETUP_FAILED = "setup-failed"
    INVALID_ARGUMENT = "invalid-argument"
    UNKNOWN = "unknown"


# -- Errors after which a reader falls back to the local mirror --
RECOVERABLE_CODES = frozenset({
    ErrorCode.NOT_FOUND,
    ErrorCode.PERMISSION_DENIED,
    ErrorCode.UNAVAILABLE,
    ErrorCode.FAILED_PRECONDITION,
    ErrorCode.UNIMPLEMENTED,
    ErrorCode.SETUP_FAILED,
})

# -- Keys owned by the store, never written into a document body --
RESERVED_KEYS = frozenset({
    "id", "company_id", "created_by", "created_at", "updated_at", "origin",
})


class RemoteError(Exception):
    """A remote store failure with a classified code."""

    def __init__(self, code, message=""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code

    @property
    def recoverable(self):
        return self.code in RECOVERABLE_CODES

    def __repr__(self):
        return f"<RemoteError {self.code}: {self.message}>"


def classify_error(exc):
    """Map an exception raised while talking to the database to a RemoteError."""
    if isinstance(exc, RemoteError):
        return exc

    message = str(exc)
    lowered = message.lower()

    if isinstance(exc, NotImplementedError):
        return RemoteError(ErrorCode.UNIMPLEMENTED, message)
    if isinstance(exc, sa_exc.NoResultFound):
        return RemoteError(ErrorCode.NOT_FOUND, message)
    if "permission denied" in lowered or "insufficient privilege" in lowered:
        return RemoteError(ErrorCode.PERMISSION_DENIED, message)
    if "no such table" in lowered or "does not exist" in lowered:
        return RemoteError(ErrorCode.NOT_FOUND, message)
    if "no such column" in lowered or "has no column" in lowered:
        return RemoteError(ErrorCode.FAILED_PRECONDITION, message)
    if isinstance(exc, (sa_exc.IntegrityError, sa_exc.DataError)):
        return RemoteError(ErrorCode.INVALID_ARGUMENT, message)
    if isinstance(exc, (sa_exc.DisconnectionError, sa_exc.TimeoutError,
                        sa_exc.InterfaceError, sa_exc.OperationalError)):
        return RemoteError(ErrorCode.UNAVAILABLE, message)
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return RemoteError(ErrorCode.UNAVAILABLE, message)
    if isinstance(exc, (sa_exc.ProgrammingError, sa_exc.NoSuchTableError,
                        sa_exc.CompileError)):
        return RemoteError(ErrorCode.FAILED_PRECONDITION, message)
    return RemoteError(ErrorCode.UNKNOWN, message)


class RemoteSubscription:
    """Handle returned by DocumentService.subscribe()."""

    def __init__(self, service, key, on_snapshot, on_error):
        self._service = service
        self.key = key
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._service._unregister(self)


class DocumentService:
    """SQLAlchemy-backed remote document store with live subscriptions."""

    def __init__(self):
        self._listeners = {}
        self._lock = threading.Lock()

    # ─── Reads ───────────────────────────────────────────────────

    def subscribe(self, collection, company_id, on_snapshot, on_error):
        """Register a live query on one company's collection.

        The current snapshot (or the classified error) is delivered before
        this returns. Raises RemoteError(setup-failed) when the query
        cannot even be set up, e.g. outside an application context.
        """
        if not company_id:
            raise RemoteError(ErrorCode.SETUP_FAILED, "company id is required")

        subscription = RemoteSubscription(
            self, (collection, company_id), on_snapshot, on_error
        )
        if not has_app_context():
            raise RemoteError(ErrorCode.SETUP_FAILED, "no application context")
        with self._lock:
            self._listeners.setdefault(subscription.key, []).append(subscription)

        self._deliver(subscription)
        return subscription

    def fetch(self, collection, company_id):
        """One-shot read of a company's collection."""
        return self._run("fetch", collection, lambda: self._query(collection, company_id))

    # ─── Writes ──────────────────────────────────────────────────

    def create(self, collection, company_id, record, created_by=None):
        """Insert a document and return its generated id."""

        def _create():
            now = datetime.now(timezone.utc)
            doc = Document(
                collection=collection,
                company_id=company_id,
                created_by=created_by,
                data=_body(record),
                created_at=now,
                updated_at=now,
            )
            db.session.add(doc)
            db.session.commit()
            return doc.id

        doc_id = self._run("create", collection, _create)
        self._broadcast(collection, company_id)
        return doc_id

    def update(self, collection, company_id, doc_id, changes):
        """Merge `changes` into an existing document."""

        def _update():
            doc = self._get_owned(collection, company_id, doc_id)
            if doc is None:
                raise RemoteError(
                    ErrorCode.NOT_FOUND, f"{collection}/{doc_id} not found"
                )
            doc.data = {**(doc.data or {}), **_body(changes)}
            doc.updated_at = datetime.now(timezone.utc)
            db.session.commit()

        self._run("update", collection, _update)
        self._broadcast(collection, company_id)

    def delete(self, collection, company_id, doc_id):
        """Delete a document. Deleting a missing document is not an error."""

        def _delete():
            doc = self._get_owned(collection, company_id, doc_id)
            if doc is not None:
                db.session.delete(doc)
                db.session.commit()

        self._run("delete", collection, _delete)
        self._broadcast(collection, company_id)

    # ─── Internals ───────────────────────────────────────────────

    def _run(self, operation, collection, fn):
        try:
            return fn()
        except RemoteError:
            _rollback()
            raise
        except (sa_exc.SQLAlchemyError, OSError, NotImplementedError) as e:
            _rollback()
            error = classify_error(e)
            logger.warning(
                f"Remote {operation} on {collection} failed ({error.code}): {e}"
            )
            raise error from e

    def _query(self, collection, company_id):
        docs = (
            Document.query
            .filter_by(collection=collection, company_id=company_id)
            .order_by(Document.created_at)
            .all()
        )
        return [doc.to_record() for doc in docs]

    def _get_owned(self, collection, company_id, doc_id):
        doc = db.session.get(Document, doc_id)
        if doc is None or doc.collection != collection:
            return None
        if doc.company_id != company_id:
            raise RemoteError(
                ErrorCode.PERMISSION_DENIED,
                f"{collection}/{doc_id} belongs to another company",
            )
        return doc

    def _deliver(self, subscription):
        collection, company_id = subscription.key
        try:
            records = self._run(
                "query", collection, lambda: self._query(collection, company_id)
            )
        except RemoteError as error:
            subscription.on_error(error)
            return
        subscription.on_snapshot(records)

    def _broadcast(self, collection, company_id):
        with self._lock:
            listeners = list(self._listeners.get((collection, company_id), []))
        for subscription in listeners:
            if subscription.active:
                self._deliver(subscription)

    def _unregister(self, subscription):
        with self._lock:
            listeners = self._listeners.get(subscription.key, [])
            if subscription in listeners:
                listeners.remove(subscription)
            if not listeners:
                self._listeners.pop(subscription.key, None)

    def listener_count(self, collection, company_id):
        with self._lock:
            return len(self._listeners.get((collection, company_id), []))


def _body(record):
    return {k: v for k, v in (record or {}).items() if k not in RESERVED_KEYS}


def _rollback():
    try:
        db.session.rollback()
    except sa_exc.SQLAlchemyError as e:
        logger.error(f"Rollback failed: {e}")


def get_document_service(app=None):
    """Return the app-wide DocumentService, creating it on first use."""
    from flask import current_app

    app = app or current_app
    service = app.extensions.get("document_service")
    if service is None:
        service = DocumentService()
        app.extensions["document_service"] = service
    return service
