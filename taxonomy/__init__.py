import json
import logging
import os
import subprocess
import click
from pathlib import Path
from flask import Flask, jsonify, request, g
from werkzeug.exceptions import HTTPException

from taxonomy.extensions import cors, init_store
from taxonomy.models import CategoryRecord
from taxonomy.segments.segment_categories import categories_bp
from taxonomy.services.category_store import CategoryStore
from taxonomy.services.category_tree import CategoryTree, CategoryTreeError, compute_stats
from taxonomy.utils.observability import init_sentry, install_request_observers


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        repo_root = Path(__file__).resolve().parents[1]
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except Exception:
        return "unknown"


def _resolve_log_level() -> int:
    name = (os.getenv("TAXONOMY_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _read_records_file(path: str) -> list[CategoryRecord]:
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if isinstance(raw, dict):
        raw = raw.get("records")
    if not isinstance(raw, list):
        raise click.ClickException("Expected a JSON list of category records (or {\"records\": [...]}).")
    records = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise click.ClickException(f"Record {idx} is not an object.")
        try:
            records.append(CategoryRecord.from_dict(item))
        except (KeyError, TypeError, ValueError):
            raise click.ClickException(f"Record {idx} needs an integer id.")
    return records


def create_app(store: CategoryStore | None = None):
    app = Flask(__name__)
    app.logger.setLevel(_resolve_log_level())
    init_sentry(app)

    env = (os.getenv("TAXONOMY_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")

    # CORS configuration
    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    tree_store = init_store(app, store)
    install_request_observers(app)
    app.logger.info(
        "category_store_ready max_nodes=%s max_depth=%s env=%s",
        tree_store.max_nodes,
        tree_store.max_depth,
        env,
    )

    @app.errorhandler(CategoryTreeError)
    def _category_tree_error(error: CategoryTreeError):
        if int(error.status) >= 500:
            app.logger.error("category_tree_error code=%s message=%s path=%s", error.code, error.message, request.path)
        payload = error.to_payload()
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return jsonify(payload), int(error.status)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return jsonify(payload), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
        }
        if request.path.startswith("/api/"):
            payload["status"] = 500
            rid = (getattr(g, "request_id", "") or "").strip()
            if rid:
                payload["trace_id"] = rid
        return jsonify(payload), 500

    app.register_blueprint(categories_bp)

    @app.get("/api/health")
    def health():
        return jsonify({
            "ok": True,
            "service": "taxonomy-engine",
            "env": env,
            "git_sha": _resolve_git_sha(),
        })

    @app.get("/")
    def root():
        return jsonify({
            "ok": True,
            "service": "taxonomy-engine",
            "env": env,
        })

    @app.get("/api/version")
    def version():
        return jsonify({
            "ok": True,
            "git_sha": _resolve_git_sha(),
        })

    @app.cli.command("check-categories")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--strict", is_flag=True, default=False, help="Fail on the first anomaly")
    def check_categories(path: str, strict: bool):
        """Build a tree from a JSON records file and report anomalies."""
        records = _read_records_file(path)
        try:
            tree = CategoryTree.from_records(records, strict=strict)
        except CategoryTreeError as e:
            raise click.ClickException(f"{e.code}: {e.message}")
        for anomaly in tree.anomalies:
            click.echo(f"anomaly code={anomaly.code} message={anomaly.message}")
        stats = compute_stats(tree.roots)
        click.echo(
            f"categories_ok total={stats.total} active={stats.active} "
            f"roots={stats.roots} subcategories={stats.subcategories} anomalies={len(tree.anomalies)}"
        )

    @app.cli.command("load-categories")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--tenant", "tenant", default=None, help="Tenant to load into")
    def load_categories(path: str, tenant: str | None):
        """Replace a tenant's in-memory tree with the records in a JSON file."""
        records = _read_records_file(path)
        try:
            tree = tree_store.load(tenant, records)
        except CategoryTreeError as e:
            raise click.ClickException(f"{e.code}: {e.message}")
        click.echo(f"categories_loaded count={len(tree)} anomalies={len(tree.anomalies)}")

    return app
