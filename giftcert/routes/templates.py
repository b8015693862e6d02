from __future__ import annotations

import json
import os
import uuid

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from ..app import db, get_settings
from ..models import Certificate, Template
from ..shared.auth import api_key_required, error_response
from ..shared.field_mapping import load_field_mapping, validate_field_mapping
from ..shared.storage import ensure_dir, remove_file, resolve_under

bp = Blueprint("templates", __name__, url_prefix="/api/v1/templates")

PDF_MAGIC = b"%PDF"


def _parse_mapping(raw):
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"field_mapping is not valid JSON: {exc.msg}") from exc
    return validate_field_mapping(raw)


def template_detail(template: Template) -> dict:
    mapping = load_field_mapping(template.field_mapping)
    return {
        "id": template.id,
        "name": template.name,
        "filename": template.filename,
        "field_mapping": mapping.to_json() if mapping else {},
        "created_at": template.created_at.isoformat() if template.created_at else None,
        "updated_at": template.updated_at.isoformat() if template.updated_at else None,
    }


@bp.get("")
@api_key_required
def list_templates():
    templates = (
        db.session.query(Template)
        .order_by(Template.created_at.desc(), Template.name)
        .all()
    )
    return jsonify(
        {"templates": [t.summary() for t in templates], "count": len(templates)}
    )


@bp.get("/<template_id>")
@api_key_required
def get_template(template_id: str):
    template = db.session.get(Template, template_id)
    if not template:
        return error_response("not_found", "Template not found", 404)
    return jsonify(template_detail(template))


@bp.post("")
@api_key_required
def upload_template():
    upload = request.files.get("template")
    if upload is None or not upload.filename:
        return error_response("bad_request", "Template file is required", 400)
    name = (request.form.get("name") or "").strip()
    if not name:
        return error_response("bad_request", "Template name is required", 400)

    filename = secure_filename(upload.filename)
    head = upload.stream.read(len(PDF_MAGIC))
    upload.stream.seek(0)
    if not filename.lower().endswith(".pdf") or head != PDF_MAGIC:
        return error_response("bad_request", "Only PDF templates are supported", 400)

    mapping = None
    raw_mapping = request.form.get("field_mapping")
    if raw_mapping:
        try:
            mapping = _parse_mapping(raw_mapping)
        except ValueError as exc:
            return error_response("bad_request", f"Invalid field_mapping: {exc}", 400)

    settings = get_settings()
    template_id = str(uuid.uuid4())
    stored_name = f"{template_id}-{filename}"
    ensure_dir(settings.templates_dir)
    dest = os.path.join(settings.templates_dir, stored_name)
    upload.save(dest)

    template = Template(
        id=template_id,
        name=name,
        filename=upload.filename,
        file_path=stored_name,
        field_mapping=mapping.to_json() if mapping else {},
    )
    db.session.add(template)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        remove_file(dest)
        current_app.logger.exception("[TEMPLATE-UPLOAD-FAIL] file=%s", stored_name)
        return error_response("persistence_error", "Template could not be saved.", 500)

    current_app.logger.info(
        "[TEMPLATE-UPLOAD] template=%s name=%s file=%s", template_id, name, stored_name
    )
    body = template_detail(template)
    body["message"] = "Template uploaded"
    return jsonify(body), 201


@bp.put("/<template_id>/mapping")
@api_key_required
def update_mapping(template_id: str):
    payload = request.get_json(silent=True) or {}
    if "field_mapping" not in payload:
        return error_response("bad_request", "field_mapping is required", 400)
    try:
        mapping = _parse_mapping(payload["field_mapping"])
    except ValueError as exc:
        return error_response("bad_request", f"Invalid field_mapping: {exc}", 400)

    template = db.session.get(Template, template_id)
    if not template:
        return error_response("not_found", "Template not found", 404)
    template.field_mapping = mapping.to_json()
    db.session.commit()
    current_app.logger.info("[TEMPLATE-MAPPING] template=%s", template_id)
    return jsonify(
        {"id": template.id, "field_mapping": template.field_mapping, "message": "Mapping updated"}
    )


@bp.delete("/<template_id>")
@api_key_required
def delete_template(template_id: str):
    template = db.session.get(Template, template_id)
    if not template:
        return error_response("not_found", "Template not found", 404)
    in_use = (
        db.session.query(Certificate)
        .filter(Certificate.template_id == template_id)
        .count()
    )
    if in_use:
        return error_response(
            "conflict",
            "Template is used by existing certificates",
            409,
            certificates_count=in_use,
        )
    path = resolve_under(get_settings().templates_dir, template.file_path)
    db.session.delete(template)
    db.session.commit()
    remove_file(path)
    current_app.logger.info("[TEMPLATE-DELETE] template=%s", template_id)
    return jsonify({"message": "Template deleted"})
