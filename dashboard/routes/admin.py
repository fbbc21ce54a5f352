"""
Admin API Routes.

User administration across the directory and the management API.
All routes require the administrator flag in the session token.
"""

import csv
import io
import logging

from flask import Blueprint, jsonify, request, g

from core.errors import DirectoryError, ValidationError
from dashboard.auth import admin_required
from dashboard.auth.config import (
    AUDIT_CREATE_USER,
    AUDIT_UPDATE_USER,
    AUDIT_DELETE_USER,
    AUDIT_IMPORT_USERS,
)
from dashboard.context import get_context

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

IMPORT_COLUMNS = ("uid", "password", "mail", "cn")


@admin_bp.before_request
@admin_required
def require_admin():
    """All admin routes require admin role."""
    pass


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_import_csv(text: str) -> list[dict]:
    """Rows of a uid,password,mail,cn CSV (header required, extra columns ignored)."""
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames or "uid" not in [f.strip() for f in reader.fieldnames]:
        raise ValidationError(f"CSV header must include: {', '.join(IMPORT_COLUMNS)}")

    rows = []
    for raw in reader:
        row = {(k or "").strip(): (v or "").strip() for k, v in raw.items() if k}
        rows.append({column: row.get(column, "") for column in IMPORT_COLUMNS})
    return rows


# =============================================================================
# User Management
# =============================================================================

@admin_bp.route('/users', methods=['GET'])
def list_users():
    """List users; management API for the plain listing, directory for filters."""
    search_filter = request.args.get('filter')
    result = get_context().reconciliation().list_users(search_filter)
    if not result.ok:
        raise result.error or DirectoryError(result.reason)
    return jsonify([u.to_dict() for u in result.users])


@admin_bp.route('/users', methods=['POST'])
def create_user():
    data = _json_body()
    uid = str(data.get("uid") or "").strip()
    if not uid:
        raise ValidationError("uid is required")

    ctx = get_context()
    ctx.reconciliation().create_user({
        "uid": uid,
        "mail": data.get("mail"),
        "cn": data.get("cn") or data.get("displayName"),
        "password": data.get("password"),
    })
    ctx.store.append_audit(g.current_user, AUDIT_CREATE_USER, f"Created user {uid}")
    return jsonify({"message": "User created", "uid": uid}), 201


@admin_bp.route('/users/<uid>', methods=['PUT'])
def update_user(uid):
    data = _json_body()
    fields = {
        "mail": data.get("mail") or None,
        "cn": data.get("cn") or data.get("displayName") or None,
        "password": data.get("password") or None,
    }

    ctx = get_context()
    outcome = ctx.reconciliation().update_user(uid, fields)

    if not outcome.attempted:
        return jsonify({"message": "Nothing to update", **outcome.to_dict()})

    if outcome.succeeded:
        legs = "info" if "management" in outcome.succeeded else ""
        if outcome.password_changed:
            legs = f"{legs} + password" if legs else "password"
        ctx.store.append_audit(g.current_user, AUDIT_UPDATE_USER, f"Updated user {uid} ({legs})")

    if outcome.ok:
        return jsonify({"message": "User updated", **outcome.to_dict()})
    if outcome.partial:
        return jsonify({"message": "User partially updated", **outcome.to_dict()}), 207

    # Every attempted leg failed
    raise next(iter(outcome.errors.values()))


@admin_bp.route('/users/<uid>', methods=['DELETE'])
def delete_user(uid):
    ctx = get_context()
    ctx.reconciliation().delete_user(uid)
    ctx.store.append_audit(g.current_user, AUDIT_DELETE_USER, f"Deleted user {uid}")
    return jsonify({"message": "User deleted", "uid": uid})


@admin_bp.route('/users/import', methods=['POST'])
def import_users():
    """Bulk create from an uploaded CSV (multipart field "file")."""
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError("No file uploaded")

    try:
        text = upload.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")

    ctx = get_context()
    report = ctx.reconciliation().bulk_import(parse_import_csv(text))
    ctx.store.append_audit(
        g.current_user,
        AUDIT_IMPORT_USERS,
        f"Imported {report.success} users, {report.failed} failed",
    )
    return jsonify({"message": "Import completed", **report.to_dict()})
