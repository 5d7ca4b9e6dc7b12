from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from taxonomy.extensions import STORE_KEY
from taxonomy.models.category import CategoryRecord
from taxonomy.services.category_store import CategoryStore
from taxonomy.services.category_tree import (
    CategoryValidationError,
    compute_stats,
    describe_category,
    filter_tree,
    flatten,
    initial_expansion,
    list_parent_candidates,
    prune_inactive,
    visible_rows,
)
from taxonomy.utils.events import log_event
from taxonomy.utils.observability import request_tenant


categories_bp = Blueprint("categories_bp", __name__, url_prefix="/api")

PAYLOAD_FIELDS = ("name", "slug", "description", "status", "position", "parent_id")


def _store() -> CategoryStore:
    return current_app.extensions[STORE_KEY]


def _tenant() -> str:
    return request_tenant()


def _maybe_int(value):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except Exception:
        return None


def _maybe_bool(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) == 1
    text_value = str(value).strip().lower()
    if text_value in ("1", "true", "yes", "y", "on"):
        return True
    if text_value in ("0", "false", "no", "n", "off"):
        return False
    return None


def _parse_parent_arg(raw_value) -> int | None:
    if raw_value is None:
        return None
    text_value = str(raw_value).strip().lower()
    if text_value in ("", "null", "none", "root"):
        return None
    parsed = _maybe_int(text_value)
    if parsed is None:
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message="parent_id must be an integer or empty for root",
            field_name="parent_id",
        )
    return parsed


def _parse_position(raw_value) -> int | None:
    if raw_value in (None, ""):
        return None
    parsed = None if isinstance(raw_value, bool) else _maybe_int(raw_value)
    if parsed is None:
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message="position must be an integer",
            field_name="position",
        )
    return parsed


def _parse_id_list(raw_value: str) -> set[int]:
    ids: set[int] = set()
    for part in str(raw_value or "").split(","):
        parsed = _maybe_int(part.strip())
        if parsed is not None:
            ids.add(parsed)
    return ids


def _category_payload(body: dict) -> dict:
    payload = {key: body[key] for key in PAYLOAD_FIELDS if key in body}
    if "parent_id" not in payload and "parentId" in body:
        payload["parent_id"] = body["parentId"]
    for key in ("parent_id", "position"):
        if key not in payload:
            continue
        raw = payload[key]
        if isinstance(raw, bool):
            continue
        converted = _maybe_int(raw)
        # Unparseable values go through untouched so validation can name the field.
        if converted is not None or raw in (None, ""):
            payload[key] = converted
    return payload


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _forest_for_view():
    tree = _store().snapshot(_tenant())
    forest = tree.roots
    if _maybe_bool(request.args.get("active_only")):
        forest = prune_inactive(forest)
    return tree, forest


@categories_bp.get("/categories")
def list_category_tree():
    query = (request.args.get("q") or "").strip()
    _tree, forest = _forest_for_view()
    if query:
        forest = filter_tree(forest, query)
    return jsonify({"ok": True, "query": query, "items": [node.to_dict() for node in forest]}), 200


@categories_bp.get("/categories/flat")
def list_category_flat():
    _tree, forest = _forest_for_view()
    return jsonify({"ok": True, "items": [row.to_dict() for row in flatten(forest)]}), 200


@categories_bp.get("/categories/stats")
def category_stats():
    _tree, forest = _forest_for_view()
    return jsonify({"ok": True, "stats": compute_stats(forest).to_dict()}), 200


@categories_bp.get("/categories/parent-options")
def category_parent_options():
    tree = _store().snapshot(_tenant())
    exclude_id = _maybe_int(request.args.get("exclude_id"))
    items = list_parent_candidates(tree, exclude_id)
    return jsonify({"ok": True, "items": [item.to_dict() for item in items]}), 200


@categories_bp.get("/categories/visible")
def category_visible_rows():
    query = (request.args.get("q") or "").strip()
    _tree, forest = _forest_for_view()
    if "expanded" in request.args:
        expanded = _parse_id_list(request.args.get("expanded") or "")
    else:
        expanded = initial_expansion(forest)
    rows = visible_rows(forest, expanded, query)
    return jsonify(
        {
            "ok": True,
            "query": query,
            "expanded": sorted(expanded),
            "items": [row.to_dict() for row in rows],
        }
    ), 200


@categories_bp.get("/categories/<int:category_id>")
def get_category(category_id: int):
    tree = _store().snapshot(_tenant())
    return jsonify({"ok": True, "category": describe_category(tree, category_id).to_dict()}), 200


@categories_bp.get("/categories/<int:category_id>/can-move")
def category_can_move(category_id: int):
    parent_id = _parse_parent_arg(request.args.get("parent_id"))
    error = _store().check_move(_tenant(), category_id, parent_id)
    return jsonify(
        {
            "ok": True,
            "allowed": error is None,
            "reason": error.to_payload() if error is not None else None,
        }
    ), 200


@categories_bp.post("/categories")
def create_category_route():
    tenant = _tenant()
    store = _store()
    mutation = store.create(tenant, _category_payload(_json_body()))
    log_event("category.created", tenant=tenant, subject_id=mutation.category_id, metadata=mutation.to_dict())
    category = describe_category(store.snapshot(tenant), mutation.category_id)
    return jsonify({"ok": True, "category": category.to_dict(), "mutation": mutation.to_dict()}), 201


@categories_bp.put("/categories/<int:category_id>")
def update_category_route(category_id: int):
    tenant = _tenant()
    store = _store()
    mutation = store.update(tenant, category_id, _category_payload(_json_body()))
    if mutation.fields:
        log_event("category.updated", tenant=tenant, subject_id=category_id, metadata=mutation.to_dict())
    category = describe_category(store.snapshot(tenant), category_id)
    return jsonify({"ok": True, "category": category.to_dict(), "mutation": mutation.to_dict()}), 200


@categories_bp.post("/categories/<int:category_id>/move")
def move_category_route(category_id: int):
    tenant = _tenant()
    store = _store()
    body = _json_body()
    parent_raw = body.get("parent_id", body.get("parentId"))
    parent_id = _parse_parent_arg(parent_raw)
    position = _parse_position(body.get("position"))
    mutation = store.move(tenant, category_id, parent_id, position=position)
    log_event("category.moved", tenant=tenant, subject_id=category_id, metadata=mutation.to_dict())
    category = describe_category(store.snapshot(tenant), category_id)
    return jsonify({"ok": True, "category": category.to_dict(), "mutation": mutation.to_dict()}), 200


@categories_bp.delete("/categories/<int:category_id>")
def delete_category_route(category_id: int):
    tenant = _tenant()
    mutation = _store().delete(tenant, category_id)
    log_event("category.deleted", tenant=tenant, subject_id=category_id, metadata=mutation.to_dict())
    return jsonify({"ok": True, "removed_ids": mutation.removed_ids, "mutation": mutation.to_dict()}), 200


@categories_bp.put("/admin/categories/records")
def replace_category_records():
    tenant = _tenant()
    body = _json_body()
    raw_records = body.get("records")
    if not isinstance(raw_records, list):
        return jsonify({"ok": False, "code": "INVALID_RECORDS", "message": "records must be a list"}), 400

    records: list[CategoryRecord] = []
    for idx, raw in enumerate(raw_records):
        if not isinstance(raw, dict):
            return jsonify({"ok": False, "code": "INVALID_RECORDS", "message": f"record {idx} must be an object"}), 400
        try:
            records.append(CategoryRecord.from_dict(raw))
        except (KeyError, TypeError, ValueError):
            return jsonify({"ok": False, "code": "INVALID_RECORDS", "message": f"record {idx} needs an integer id"}), 400

    tree = _store().load(tenant, records, strict=bool(_maybe_bool(body.get("strict"))))
    for anomaly in tree.anomalies:
        log_event(
            "category_tree.anomaly",
            tenant=tenant,
            severity="WARNING",
            metadata=anomaly.to_payload(),
        )
    return jsonify(
        {
            "ok": True,
            "count": len(tree),
            "anomalies": [anomaly.to_payload() for anomaly in tree.anomalies],
            "stats": compute_stats(tree.roots).to_dict(),
        }
    ), 200
