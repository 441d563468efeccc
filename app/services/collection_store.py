"""Collection store — one CRUD contract over remote or local persistence.

A CollectionStore is bound to one collection name (sites, clients, leads,
templates, teams, ...) and one TenantMode. Callers subscribe to a stream
of full snapshots and issue add / update / remove; they never branch on
connectivity.

Read path (per subscription lifetime):

    INIT -> LOCAL_ACTIVE                         local tenant
    INIT -> REMOTE_SUBSCRIBING -> REMOTE_ACTIVE  first snapshot received
                               -> LOCAL_FALLBACK recoverable error (terminal)
                               -> ERROR          unclassified error (no data)
    any  -> DISPOSED                             tenant change / last listener gone

Only errors before the first snapshot trigger the fallback; once
REMOTE_ACTIVE, later errors are logged and the last snapshot is kept.

Write path: every add / update / remove returns a WriteResult tagged with
where it was persisted. Remote failures fall back to a local write and
never escape to the caller; the `notify(message, category)` side channel
tells the user whether the change reached the cloud.

The mirror is scoped to the tenant (revo_mock_<company>_<collection>,
revo_mock_demo_<session>_<collection>; the session-less demo tenant keeps
revo_mock_<collection>). While the remote is live, records that only exist
in the mirror (origin "local") are shown on top of each remote snapshot,
and writes to them never reach the remote.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from flask import current_app

from app.services.default_data import default_records
from app.services.document_service import (
    ErrorCode,
    RemoteError,
    get_document_service,
)
from app.services.local_storage import collection_key, get_local_storage
from app.services.record_ids import IdOrigin, RecordId
from app.services.tenant_mode import mode_name, scoped_key

logger = logging.getLogger(__name__)


class StoreState(str, Enum):
    INIT = "init"
    LOCAL_ACTIVE = "local_active"
    REMOTE_SUBSCRIBING = "remote_subscribing"
    REMOTE_ACTIVE = "remote_active"
    LOCAL_FALLBACK = "local_fallback"
    ERROR = "error"
    DISPOSED = "disposed"


class PersistedTo(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class Attempt:
    """Outcome of one remote call: a value or a classified failure."""

    value: Any = None
    failure: Optional[RemoteError] = None

    @property
    def succeeded(self):
        return self.failure is None


@dataclass(frozen=True)
class WriteResult:
    """Public write outcome. Always a success; `persisted_to` says where.

    `recovered_from` carries the remote failure a local write stood in for.
    """

    persisted_to: PersistedTo
    record_id: Optional[RecordId] = None
    record: Optional[dict] = None
    recovered_from: Optional[RemoteError] = None

    @property
    def is_local(self):
        return self.persisted_to is PersistedTo.LOCAL


class Subscription:
    """A listener registration on a store. Close it to stop observing."""

    def __init__(self, store, listener):
        self._store = store
        self.listener = listener
        self.closed = False

    def close(self):
        if not self.closed:
            self.closed = True
            self._store._remove_listener(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


# Record passed to the listener: one full snapshot per change.
Listener = Callable[[List[dict]], None]


class CollectionStore:
    """Resilient CRUD façade over a named collection for one tenant."""

    def __init__(self, collection_name, tenant, remote=None, local_storage=None,
                 namespace="revo_mock", notify=None, defaults=default_records):
        self.collection_name = collection_name
        self.tenant = tenant
        self.remote = remote
        self.local_storage = local_storage
        self.namespace = namespace
        self.defaults = defaults
        self._notify_cb = notify

        self.data = []
        self.loading = True
        self.state = StoreState.INIT
        self.error = None

        self._subscriptions = []
        self._remote_handle = None
        self._generation = 0

    # ─── Introspection ───────────────────────────────────────────

    @property
    def storage_key(self):
        return collection_key(scoped_key(self.namespace, self.tenant), self.collection_name)

    @property
    def mode(self):
        return mode_name(self.tenant)

    def snapshot(self):
        """Copy of the current records."""
        return [dict(record) for record in self.data]

    # ─── Read stream ─────────────────────────────────────────────

    def subscribe(self, listener=None):
        """Start observing the collection.

        The first subscriber starts the underlying source (local mirror or
        remote live query). Later subscribers immediately receive the
        current snapshot when one is available.
        """
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)

        if self.state in (StoreState.INIT, StoreState.DISPOSED):
            self._start()
        elif listener is not None and self.state in (
            StoreState.LOCAL_ACTIVE,
            StoreState.REMOTE_ACTIVE,
            StoreState.LOCAL_FALLBACK,
        ):
            listener(self.snapshot())
        return subscription

    def set_tenant(self, tenant):
        """Rebind to a new tenant context; releases the current source."""
        if tenant == self.tenant:
            return
        self._release()
        self.tenant = tenant
        self.data = []
        self.loading = True
        self.error = None
        if self._subscriptions:
            self._start()

    def dispose(self):
        """Drop every listener and release the source."""
        for subscription in list(self._subscriptions):
            subscription.closed = True
        self._subscriptions = []
        self._release()

    def _start(self):
        self._generation += 1
        self.error = None

        if self.tenant.is_local:
            self._load_local(StoreState.LOCAL_ACTIVE)
            return

        self.state = StoreState.REMOTE_SUBSCRIBING
        self.loading = True
        generation = self._generation

        if self.remote is None:
            self._on_remote_error(
                generation,
                RemoteError(ErrorCode.SETUP_FAILED, "no remote store configured"),
            )
            return

        try:
            handle = self.remote.subscribe(
                self.collection_name,
                self.tenant.company_id,
                lambda records: self._on_remote_snapshot(generation, records),
                lambda error: self._on_remote_error(generation, error),
            )
        except RemoteError as e:
            logger.error(f"Setup error on {self.collection_name}: {e}")
            self._on_remote_error(
                generation, RemoteError(ErrorCode.SETUP_FAILED, e.message)
            )
            return

        # The first snapshot (or error) may already have been delivered.
        if self.state in (StoreState.REMOTE_SUBSCRIBING, StoreState.REMOTE_ACTIVE) \
                and generation == self._generation:
            self._remote_handle = handle
        else:
            handle.unsubscribe()

    def _on_remote_snapshot(self, generation, records):
        if generation != self._generation:
            return
        if self.state not in (StoreState.REMOTE_SUBSCRIBING, StoreState.REMOTE_ACTIVE):
            return
        remote = [_tagged(record, IdOrigin.REMOTE, force=True) for record in records]
        self.data = _with_local_overlay(remote, self._stored_local() or [])
        self.loading = False
        self.state = StoreState.REMOTE_ACTIVE
        self._emit()

    def _on_remote_error(self, generation, error):
        if generation != self._generation:
            return

        if self.state == StoreState.REMOTE_ACTIVE:
            logger.warning(
                f"Remote error on live {self.collection_name} ({error.code}), "
                f"keeping last snapshot"
            )
            self.error = error
            return
        if self.state != StoreState.REMOTE_SUBSCRIBING:
            return

        self.error = error
        self._release_remote()

        if error.recoverable:
            logger.warning(
                f"Remote {self.collection_name} unavailable ({error.code}), "
                f"falling back to local storage"
            )
            self._load_local(StoreState.LOCAL_FALLBACK)
            return

        logger.error(
            f"Unclassified remote error on {self.collection_name}: {error!r}"
        )
        self.state = StoreState.ERROR
        self.loading = False

    def _load_local(self, state):
        self.data = self._read_local()
        self.loading = False
        self.state = state
        self._emit()

    def _stored_local(self):
        """Mirror contents for this tenant, or None when nothing is stored."""
        stored = None
        if self.local_storage is not None:
            stored = self.local_storage.get(self.storage_key, None)
        if not isinstance(stored, list):
            return None
        return [_tagged(record, IdOrigin.LOCAL) for record in stored
                if isinstance(record, dict)]

    def _read_local(self):
        stored = self._stored_local()
        if stored is not None:
            return stored
        return [_tagged(record, IdOrigin.SEED) for record in self.defaults(self.collection_name)]

    def _remove_listener(self, subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        if not self._subscriptions:
            self._release()

    def _release(self):
        self._generation += 1
        self._release_remote()
        if self.state != StoreState.INIT:
            self.state = StoreState.DISPOSED

    def _release_remote(self):
        if self._remote_handle is not None:
            self._remote_handle.unsubscribe()
            self._remote_handle = None

    def _emit(self):
        for subscription in list(self._subscriptions):
            if subscription.listener is not None and not subscription.closed:
                subscription.listener(self.snapshot())

    # ─── Writes ──────────────────────────────────────────────────

    def add(self, record):
        """Create a record. Falls back to the local mirror on remote failure."""
        record = {k: v for k, v in dict(record).items() if k not in ("id", "origin")}

        if self._writes_locally():
            result = self._add_local(record)
            self._notify("Item added (local)", "success")
            return result

        attempt = self._attempt(
            "add",
            lambda: self.remote.create(
                self.collection_name,
                self.tenant.company_id,
                record,
                created_by=self.tenant.user_id,
            ),
        )
        if attempt.succeeded:
            record_id = RecordId(attempt.value, IdOrigin.REMOTE)
            self._notify("Item added", "success")
            return WriteResult(
                PersistedTo.REMOTE,
                record_id,
                {**record, "id": record_id.value, "origin": IdOrigin.REMOTE.value},
            )

        result = self._add_local(record, recovered_from=attempt.failure)
        if attempt.failure.code == ErrorCode.PERMISSION_DENIED:
            self._notify("Missing permissions, saved locally", "info")
        else:
            self._notify("Saved locally (offline mode)", "info")
        return result

    def update(self, record_id, changes):
        """Merge `changes` into a record.

        Records minted locally (or a local tenant) are updated in the
        mirror without any remote call.
        """
        record_id = self._resolve_id(record_id)
        changes = {k: v for k, v in dict(changes).items() if k not in ("id", "origin")}

        if record_id.is_local or self._writes_locally():
            self._update_local(record_id, changes)
            return WriteResult(PersistedTo.LOCAL, record_id)

        attempt = self._attempt(
            "update",
            lambda: self.remote.update(
                self.collection_name, self.tenant.company_id, record_id.value, changes
            ),
        )
        if attempt.succeeded:
            return WriteResult(PersistedTo.REMOTE, record_id)

        self._update_local(record_id, changes)
        self._notify("Modified locally (offline mode)", "info")
        return WriteResult(PersistedTo.LOCAL, record_id, recovered_from=attempt.failure)

    def remove(self, record_id):
        """Delete a record. Removing an unknown id is a no-op."""
        record_id = self._resolve_id(record_id)

        if record_id.is_local or self._writes_locally():
            self._remove_local(record_id)
            self._notify("Item removed (local)", "success")
            return WriteResult(PersistedTo.LOCAL, record_id)

        attempt = self._attempt(
            "remove",
            lambda: self.remote.delete(
                self.collection_name, self.tenant.company_id, record_id.value
            ),
        )
        if attempt.succeeded:
            self._notify("Item removed", "success")
            return WriteResult(PersistedTo.REMOTE, record_id)

        self._remove_local(record_id)
        self._notify("Removed locally (offline mode)", "info")
        return WriteResult(PersistedTo.LOCAL, record_id, recovered_from=attempt.failure)

    def get(self, record_id):
        """Return the record with this id from the current snapshot, or None."""
        value = str(record_id)
        for record in self.data:
            if record.get("id") == value:
                return dict(record)
        return None

    def _writes_locally(self):
        return (
            self.tenant.is_local
            or self.remote is None
            or self.state == StoreState.LOCAL_FALLBACK
        )

    def _attempt(self, operation, fn):
        try:
            return Attempt(value=fn())
        except RemoteError as e:
            logger.error(
                f"{operation} on {self.collection_name} failed ({e.code}), "
                f"falling back to local: {e.message}"
            )
            return Attempt(failure=e)

    def _resolve_id(self, record_id):
        if isinstance(record_id, RecordId):
            return record_id
        # A remote snapshot does not carry local records; ask the mirror too.
        for record in self.data + (self._stored_local() or []):
            if record.get("id") == record_id:
                return RecordId(record_id, _origin_of(record))
        return RecordId(record_id, IdOrigin.REMOTE)

    def _shows_remote(self):
        return self.state in (
            StoreState.REMOTE_SUBSCRIBING,
            StoreState.REMOTE_ACTIVE,
            StoreState.ERROR,
        )

    def _live_remote(self):
        return [r for r in self.data if r.get("origin") == IdOrigin.REMOTE.value]

    def _mirror_base(self):
        """Records a local write starts from.

        Local states hold the mirror in `data`. Remote states hold the
        remote snapshot, which must never be written over the mirror.
        Nothing loaded yet: the mirror (or defaults), not [].
        """
        if self.state in (StoreState.LOCAL_ACTIVE, StoreState.LOCAL_FALLBACK):
            return list(self.data)
        if self.state in (StoreState.INIT, StoreState.DISPOSED):
            return self._read_local()
        return self._stored_local() or []

    def _add_local(self, record, recovered_from=None):
        record_id = RecordId.new_local()
        new_record = {"id": record_id.value, **record, "origin": record_id.origin.value}
        live = self._live_remote() if self._shows_remote() else None
        self._apply_local(self._mirror_base() + [new_record], live)
        return WriteResult(
            PersistedTo.LOCAL, record_id, dict(new_record), recovered_from=recovered_from
        )

    def _update_local(self, record_id, changes):
        base = self._mirror_base()
        if any(record.get("id") == record_id.value for record in base):
            mirror = [
                {**record, **changes} if record.get("id") == record_id.value else record
                for record in base
            ]
        else:
            # A remote record edited during an outage: keep the edited copy.
            current = self.get(record_id.value)
            mirror = base + [{**current, **changes}] if current is not None else base

        live = None
        if self._shows_remote():
            live = [
                {**record, **changes} if record.get("id") == record_id.value else record
                for record in self._live_remote()
            ]
        self._apply_local(mirror, live, persist=mirror != base or not self._shows_remote())

    def _remove_local(self, record_id):
        base = self._mirror_base()
        mirror = [record for record in base if record.get("id") != record_id.value]

        live = None
        if self._shows_remote():
            live = [
                record for record in self._live_remote()
                if record.get("id") != record_id.value
            ]
        self._apply_local(mirror, live, persist=mirror != base or not self._shows_remote())

    def _apply_local(self, mirror, live=None, persist=True):
        """Write the mirror and refresh the snapshot.

        With a remote snapshot (`live`), local-origin mirror records are
        shown on top of it.
        """
        if persist and self.local_storage is not None:
            self.local_storage.set(self.storage_key, mirror)
        self.data = mirror if live is None else _with_local_overlay(live, mirror)
        self._emit()

    def _notify(self, message, category):
        if self._notify_cb is not None:
            self._notify_cb(message, category)


def _tagged(record, origin, force=False):
    tagged = dict(record)
    if force or "origin" not in tagged:
        tagged["origin"] = origin.value
    return tagged


def _origin_of(record):
    try:
        return IdOrigin(record.get("origin", IdOrigin.REMOTE.value))
    except ValueError:
        return IdOrigin.LOCAL


def _with_local_overlay(remote_records, mirror):
    """Remote snapshot plus the records that so far only exist locally."""
    known = {record.get("id") for record in remote_records}
    return list(remote_records) + [
        dict(record) for record in mirror
        if record.get("origin") == IdOrigin.LOCAL.value and record.get("id") not in known
    ]


def open_store(collection_name, tenant, notify=None, app=None):
    """Build a store wired to the app's remote and local backends."""
    app = app or current_app
    return CollectionStore(
        collection_name,
        tenant,
        remote=get_document_service(app),
        local_storage=get_local_storage(app),
        namespace=app.config.get("LOCAL_STORE_NAMESPACE", "revo_mock"),
        notify=notify,
    )
