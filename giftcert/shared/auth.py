import hmac
from functools import wraps

from flask import current_app, jsonify, request


def error_response(kind: str, detail: str, status: int, **extra):
    payload = {"error": kind, "detail": detail}
    payload.update(extra)
    return jsonify(payload), status


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def api_key_required(fn):
    """Require ``Authorization: Bearer <API_KEY>``."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("API_KEY")
        if not expected:
            current_app.logger.error("[AUTH] API_KEY is not configured")
            return error_response(
                "server_misconfigured", "API key is not configured on the server", 500
            )
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return error_response("unauthorized", "Missing bearer token", 401)
        if not _same(token.strip(), expected):
            current_app.logger.info("[AUTH] rejected api key path=%s", request.path)
            return error_response("forbidden", "Invalid API key", 403)
        return fn(*args, **kwargs)

    return wrapper


def admin_required(fn):
    """HTTP Basic auth against ADMIN_USER / ADMIN_PASS; denies when no password is set."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = current_app.config.get("ADMIN_USER") or ""
        password = current_app.config.get("ADMIN_PASS") or ""
        auth = request.authorization
        if (
            not password
            or auth is None
            or not _same(auth.username or "", user)
            or not _same(auth.password or "", password)
        ):
            resp, status = error_response("unauthorized", "Admin credentials required", 401)
            resp.headers["WWW-Authenticate"] = 'Basic realm="giftcert-admin"'
            return resp, status
        return fn(*args, **kwargs)

    return wrapper
