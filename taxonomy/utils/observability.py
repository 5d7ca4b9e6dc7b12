from __future__ import annotations

import hashlib
import json
import os
import time
import uuid
from datetime import datetime, timezone

from flask import g, has_request_context, request

from taxonomy.services.category_store import normalize_tenant


TENANT_HEADER = "X-Tenant-Id"


def _hash_ip(ip: str, salt: str) -> str:
    raw = f"{salt}:{ip or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def get_request_id() -> str:
    if not has_request_context():
        return ""
    return getattr(g, "request_id", "")


def request_tenant() -> str:
    """Tenant for the current request: the tenant header, else the ``tenant`` query arg."""
    return normalize_tenant(request.headers.get(TENANT_HEADER) or request.args.get("tenant"))


def _error_code(response) -> str | None:
    if response.status_code < 400 or not response.is_json:
        return None
    body = response.get_json(silent=True)
    if not isinstance(body, dict):
        return None
    return body.get("code")


def _request_log_payload(app, response, rid: str) -> dict:
    started = getattr(g, "request_started_at", None)
    latency_ms = None
    if started is not None:
        latency_ms = round((time.perf_counter() - float(started)) * 1000.0, 2)
    view_args = request.view_args or {}
    return {
        "ts": datetime.now(timezone.utc).isoformat(),
        "request_id": rid,
        "method": request.method,
        "endpoint": request.endpoint,
        "path": request.path,
        "status": int(response.status_code),
        "latency_ms": latency_ms,
        "tenant": request_tenant(),
        "category_id": view_args.get("category_id"),
        "error_code": _error_code(response),
        "ip_hash": _hash_ip(request.headers.get("X-Forwarded-For", request.remote_addr or ""), app.config.get("SECRET_KEY", "taxonomy")),
    }


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        traces_rate_raw = (os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip()
        try:
            traces_rate = float(traces_rate_raw)
        except Exception:
            traces_rate = 0.0

        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("SENTRY_ENVIRONMENT") or os.getenv("TAXONOMY_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=max(0.0, min(traces_rate, 1.0)),
            before_send=_before_send_scrub,
        )
        app.logger.info("sentry_enabled")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _before_send_scrub(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers.keys()):
        kl = key.lower()
        if kl in ("authorization", "x-api-key", "cookie", "set-cookie"):
            headers[key] = "[REDACTED]"
    req["headers"] = headers
    event["request"] = req
    if has_request_context():
        tags = event.setdefault("tags", {})
        tags["tenant"] = request_tenant()
        if getattr(g, "request_id", ""):
            tags["request_id"] = g.request_id
    return event


def install_request_observers(app) -> None:
    @app.before_request
    def _request_observer_begin():
        rid = (request.headers.get("X-Request-Id") or "").strip()
        if not rid:
            rid = str(uuid.uuid4())
        g.request_id = rid
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        rid = getattr(g, "request_id", "") or str(uuid.uuid4())
        response.headers["X-Request-Id"] = rid
        app.logger.info(json.dumps(_request_log_payload(app, response, rid)))
        return response
