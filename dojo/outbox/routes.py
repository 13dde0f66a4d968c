"""
Operator endpoints for the outbox.

    GET  /admin/outbox                 list entries (?status=failed|all|<status>&limit=)
    GET  /admin/outbox/summary         counts by status
    GET  /admin/outbox/<id>            one entry
    POST /admin/outbox                 enqueue an entry
    POST /admin/outbox/<id>/retry      attempt now, ignoring backoff
    POST /admin/outbox/<id>/abandon    stop retrying
"""
from flask import jsonify, request

from dojo.auth.utils import admin_required
from dojo.logging_config import get_logger
from dojo.outbox import get_outbox, outbox_bp
from dojo.outbox.entry import EntryStatus
from dojo.outbox.errors import (
    EntryBusyError,
    EntryNotFoundError,
    InvalidEntryError,
    StaleEntryError,
    TerminalEntryError,
)
from dojo.outbox.service import OutboxService

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


def _parse_limit(raw):
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LIST_LIMIT
    if 0 < limit <= MAX_LIST_LIMIT:
        return limit
    return DEFAULT_LIST_LIMIT


@outbox_bp.route("", methods=["GET"])
@admin_required
def list_entries():
    """
    List outbox entries.

    status=failed (default) lists failures that used up their attempts,
    status=all lists everything still pending or failed, any other status
    value filters on that status.
    """
    outbox = get_outbox()
    store = outbox.store
    limit = _parse_limit(request.args.get("limit"))
    status = request.args.get("status") or EntryStatus.FAILED.value
    action_type = request.args.get("action_type")

    if status == "all":
        entries = store.list_pending(limit)
    elif status not in {s.value for s in EntryStatus}:
        return jsonify({"error": f"unknown status: {status}"}), 400
    elif status == EntryStatus.FAILED.value:
        entries = store.list_failed(limit, max_attempts=outbox.processor.max_attempts, action_type=action_type)
    elif action_type:
        entries = store.list_by_action_type(action_type, status=status, limit=limit)
    else:
        entries = store.list_by_status(status, limit)

    return jsonify({
        "entries": [e.to_dict() for e in entries],
        "total": len(entries),
        "filters": {"status": status, "limit": limit, "action_type": action_type},
    }), 200


@outbox_bp.route("/summary", methods=["GET"])
@admin_required
def summary():
    outbox = get_outbox()
    return jsonify(OutboxService.summary(outbox.store, max_attempts=outbox.processor.max_attempts)), 200


@outbox_bp.route("/<entry_id>", methods=["GET"])
@admin_required
def get_entry(entry_id):
    try:
        entry = get_outbox().store.get_by_id(entry_id)
    except EntryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(entry.to_dict()), 200


@outbox_bp.route("", methods=["POST"])
@admin_required
def enqueue_entry():
    data = request.get_json(silent=True) or {}
    action_type = data.get("action_type")
    payload = data.get("payload")
    max_attempts = data.get("max_attempts")

    # bool is an int subclass; JSON true must not pass as 1
    valid_max_attempts = isinstance(max_attempts, int) and not isinstance(max_attempts, bool) and max_attempts > 0
    if max_attempts is not None and not valid_max_attempts:
        return jsonify({"error": "max_attempts must be a positive integer"}), 400
    if action_type and action_type not in get_outbox().registry:
        logger.warning("Enqueueing entry for action type with no executor", action_type=action_type)

    try:
        entry = OutboxService.enqueue(action_type, payload, max_attempts=max_attempts)
    except InvalidEntryError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(entry.to_dict()), 201


@outbox_bp.route("/<entry_id>/retry", methods=["POST"])
@admin_required
def retry_entry(entry_id):
    try:
        entry = get_outbox().processor.process_single(entry_id)
    except EntryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TerminalEntryError as e:
        return jsonify({"error": str(e)}), 400
    except (EntryBusyError, StaleEntryError) as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"status": "retry triggered", "entry": entry.to_dict()}), 200


@outbox_bp.route("/<entry_id>/abandon", methods=["POST"])
@admin_required
def abandon_entry(entry_id):
    try:
        entry = get_outbox().processor.abandon_entry(entry_id)
    except EntryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StaleEntryError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"status": "abandoned", "entry": entry.to_dict()}), 200
