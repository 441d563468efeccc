"""API blueprint — /api/*

JSON CRUD over the tenant collections plus the kanban, list, dashboard,
calendar and capacity views.

Every request opens a CollectionStore for the current tenant, subscribes,
reads or writes, and closes the subscription. Remote failures never
surface as errors here: writes fall back to the local mirror and the
store's notifications come back in the response's "notifications" list.

Tenant resolution happens in middleware.tenant; every route requires one.
"""

import logging
from datetime import date

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    g,
    get_flashed_messages,
    jsonify,
    request,
)

from app.decorators import tenant_required
from app.models.records import COLLECTIONS
from app.services import company_service, overview_service, pipeline_service
from app.services.capacity_service import CapacityEvaluator, to_day
from app.services.collection_store import StoreState, open_store
from app.services.local_storage import get_local_storage
from app.services.pipeline_service import ConversionRequired
from app.services.record_service import clean_record

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def _open(collection):
    if collection not in COLLECTIONS:
        abort(404)
    return open_store(collection, g.tenant, notify=flash)


def _respond(payload, status=200):
    """Attach pending notifications and serialize."""
    payload["notifications"] = [
        {"category": category, "message": message}
        for category, message in get_flashed_messages(with_categories=True)
    ]
    return jsonify(payload), status


def _unavailable(store):
    code = store.error.code if store.error else None
    logger.error(f"{store.collection_name} unreadable for {g.tenant.company_id}: {code}")
    return jsonify({
        "error": f"Unable to load {store.collection_name}.",
        "code": code,
    }), 503


def _write_dict(result):
    return {
        "id": str(result.record_id) if result.record_id else None,
        "persisted_to": result.persisted_to.value,
        "record": result.record,
    }


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object.")
    return data


def _today():
    """Wall-clock day, overridable with ?today=YYYY-MM-DD."""
    value = request.args.get("today")
    if not value:
        return date.today()
    try:
        return to_day(value)
    except ValueError:
        abort(400, description="today must be an ISO date.")


def _evaluator(sites):
    limit = company_service.get_simultaneous_limit(
        g.tenant,
        get_local_storage(),
        current_app.config.get("DEFAULT_SIMULTANEOUS_LIMIT", 3),
    )
    return CapacityEvaluator(sites, limit)


# ──────────────────────────────────────────────
# Views: boards, list, dashboard, calendar, capacity
# ──────────────────────────────────────────────

@api_bp.route("/sites/board")
@tenant_required
def site_board():
    store = _open("sites")
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        sites = store.snapshot()
    today = _today()
    return _respond({
        "mode": store.mode,
        "columns": overview_service.build_site_board(sites, _evaluator(sites), today),
    })


@api_bp.route("/leads/board")
@tenant_required
def lead_board():
    store = _open("leads")
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        leads = store.snapshot()
    return _respond({
        "mode": store.mode,
        "columns": overview_service.build_lead_board(leads),
    })


@api_bp.route("/sites/list")
@tenant_required
def site_list():
    store = _open("sites")
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        sites = store.snapshot()
    today = _today()
    rows = overview_service.build_site_list(
        sites,
        _evaluator(sites),
        today,
        status=request.args.get("status"),
        search=request.args.get("q"),
    )
    return _respond({"mode": store.mode, "sites": rows})


@api_bp.route("/dashboard")
@tenant_required
def dashboard():
    store = _open("sites")
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        sites = store.snapshot()
    today = _today()
    payload = overview_service.build_dashboard(sites, _evaluator(sites), today)
    payload["mode"] = store.mode
    payload["today"] = today.isoformat()
    return _respond(payload)


@api_bp.route("/calendar")
@tenant_required
def calendar_view():
    view = request.args.get("view", "month")
    anchor = request.args.get("date") or _today()

    store = _open("sites")
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        sites = store.snapshot()

    try:
        payload = overview_service.build_calendar(sites, _evaluator(sites), view, anchor)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    payload["mode"] = store.mode
    return _respond(payload)


@api_bp.route("/capacity")
@tenant_required
def capacity():
    """Capacity on one day: active sites, limit and whether it is reached."""
    try:
        day = to_day(request.args.get("date")) or _today()
    except ValueError:
        return jsonify({"error": "date must be an ISO date."}), 400

    store = _open("sites")
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        sites = store.snapshot()

    evaluator = _evaluator(sites)
    active = evaluator.active_sites_on(day)
    return _respond({
        "date": day.isoformat(),
        "simultaneous_limit": evaluator.limit,
        "active_count": len(active),
        "over_limit": evaluator.is_over_limit_on(day),
        "site_ids": [site.get("id") for site in active],
    })


# ──────────────────────────────────────────────
# Pipeline: status moves and lead conversion
# ──────────────────────────────────────────────

@api_bp.route("/sites/<record_id>/status", methods=["PUT"])
@tenant_required
def change_site_status(record_id):
    status = _json_body().get("status")
    store = _open("sites")
    with store.subscribe():
        try:
            result = pipeline_service.change_site_status(store, record_id, status)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
    return _respond(_write_dict(result))


@api_bp.route("/leads/<record_id>/status", methods=["PUT"])
@tenant_required
def change_lead_status(record_id):
    status = _json_body().get("status")
    store = _open("leads")
    with store.subscribe():
        try:
            result = pipeline_service.change_lead_status(store, record_id, status)
        except ConversionRequired as e:
            return jsonify({
                "error": "conversion_required",
                "message": str(e),
                "lead_id": e.lead_id,
            }), 409
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
    return _respond(_write_dict(result))


@api_bp.route("/leads/<record_id>/convert", methods=["POST"])
@tenant_required
def convert_lead(record_id):
    """Turn a lead into a site, then mark the lead Won."""
    data = _json_body()

    leads_store = _open("leads")
    sites_store = _open("sites")
    with leads_store.subscribe(), sites_store.subscribe():
        if leads_store.state == StoreState.ERROR:
            return _unavailable(leads_store)

        lead = leads_store.get(record_id)
        if lead is None:
            return jsonify({"error": "Lead not found."}), 404

        try:
            outcome = pipeline_service.convert_lead(
                sites_store,
                leads_store,
                lead,
                data.get("address"),
                start_date=data.get("start_date"),
                end_date=data.get("end_date"),
                notify=flash,
                today=_today(),
                default_days=current_app.config.get("CONVERSION_DEFAULT_DAYS", 30),
            )
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

    if not outcome.converted:
        return _respond({"converted": False, "error": outcome.error}, 500)

    return _respond({
        "converted": True,
        "site": _write_dict(outcome.site),
        "lead": _write_dict(outcome.lead),
    }, 201)


# ──────────────────────────────────────────────
# Company settings
# ──────────────────────────────────────────────

@api_bp.route("/company")
@tenant_required
def get_company():
    settings = company_service.get_company_settings(
        g.tenant,
        get_local_storage(),
        current_app.config.get("DEFAULT_SIMULTANEOUS_LIMIT", 3),
    )
    return jsonify(settings)


@api_bp.route("/company", methods=["PUT"])
@tenant_required
def update_company():
    data = _json_body()
    try:
        company_service.update_company_settings(
            g.tenant,
            get_local_storage(),
            name=data.get("name"),
            simultaneous_limit=data.get("simultaneous_limit"),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return get_company()


# ──────────────────────────────────────────────
# Generic collection CRUD
# ──────────────────────────────────────────────

@api_bp.route("/<collection>")
@tenant_required
def list_records(collection):
    store = _open(collection)
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        return _respond({
            "collection": collection,
            "mode": store.mode,
            "state": store.state.value,
            "loading": store.loading,
            "records": store.snapshot(),
        })


@api_bp.route("/<collection>/<record_id>")
@tenant_required
def get_record(collection, record_id):
    store = _open(collection)
    with store.subscribe():
        if store.state == StoreState.ERROR:
            return _unavailable(store)
        record = store.get(record_id)
    if record is None:
        return jsonify({"error": "Record not found."}), 404
    return jsonify({"record": record})


@api_bp.route("/<collection>", methods=["POST"])
@tenant_required
def create_record(collection):
    store = _open(collection)
    try:
        record = clean_record(collection, _json_body())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    with store.subscribe():
        result = store.add(record)
    return _respond(_write_dict(result), 201)


@api_bp.route("/<collection>/<record_id>", methods=["PUT"])
@tenant_required
def update_record(collection, record_id):
    store = _open(collection)
    try:
        changes = clean_record(collection, _json_body(), partial=True)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    with store.subscribe():
        result = store.update(record_id, changes)
    return _respond(_write_dict(result))


@api_bp.route("/<collection>/<record_id>", methods=["DELETE"])
@tenant_required
def delete_record(collection, record_id):
    store = _open(collection)
    with store.subscribe():
        result = store.remove(record_id)
    return _respond(_write_dict(result))
