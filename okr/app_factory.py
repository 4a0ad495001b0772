"""Flask application factory.

Provides:
 - configuration from env (+ `.env`) with dict overrides for tests
 - DB engine initialization and per-request session teardown
 - feature flag registry seeded from FEATURE_<NAME> variables
 - central JSON error handlers ({error, status, type, request_id})
 - request id / timing middleware with one structured log line per request
 - email + AI clients attached to the app for blueprints and jobs
 - blueprint registration
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.wrappers.response import Response

from .activities_api import bp as activities_bp
from .ai_api import bp as ai_bp
from .ai_client import AIClient
from .analytics_api import bp as analytics_bp
from .app_authz import require_profile
from .auth_api import bp as auth_bp
from .config import Config
from .cron_api import bp as cron_bp
from .db import init_engine, remove_session
from .email_client import BrevoEmailClient
from .errors import register_error_handlers
from .feature_flags import FeatureRegistry
from .health_api import bp as health_bp
from .import_api import bp as import_bp
from .initiatives_api import bp as initiatives_bp
from .invitations_api import bp as invitations_bp
from .key_results_api import bp as key_results_bp
from .logging_setup import install_request_logger
from .objectives_api import bp as objectives_bp
from .onboarding_api import bp as onboarding_bp
from .profiles_api import bp as profiles_bp
from .webhooks_api import bp as webhooks_bp


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)

    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for k, v in config_override.items():  # also allow direct Flask config keys
            if k.isupper():
                app.config[k] = v
    app.json.sort_keys = False  # type: ignore[attr-defined]

    # --- DB setup ---
    init_engine(cfg.database_url, force=bool(app.config.get("FORCE_DB_REINIT")))
    app.logger.info("Database initialized: %s", cfg.database_url.split("@")[-1])

    @app.teardown_appcontext
    def _remove_db_session(_exc: BaseException | None) -> None:
        remove_session()

    # --- Errors, flags, collaborators ---
    register_error_handlers(app)
    app.feature_registry = FeatureRegistry(cfg.features)  # type: ignore[attr-defined]
    app.email_client = BrevoEmailClient(  # type: ignore[attr-defined]
        cfg.brevo_api_key,
        cfg.email_sender_address,
        cfg.email_sender_name,
    )
    app.ai_client = AIClient(cfg.ai_api_key, cfg.ai_model, cfg.ai_base_url)  # type: ignore[attr-defined]

    # --- Logging / timing middleware ---
    log = install_request_logger()

    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        rid = getattr(g, "request_id", None) or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        if "Cache-Control" not in resp.headers:
            resp.headers["Cache-Control"] = "no-store"
        log.info(
            {
                "request_id": rid,
                "user_id": getattr(g, "user_id", None),
                "company_id": getattr(g, "company_id", None),
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
            }
        )
        return resp

    # --- Register blueprints ---
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(invitations_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(objectives_bp)
    app.register_blueprint(key_results_bp)
    app.register_blueprint(initiatives_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(import_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(webhooks_bp)

    @app.get("/features")
    @require_profile()
    def list_features() -> Response:
        return jsonify({"data": app.feature_registry.list()})  # type: ignore[attr-defined]

    return app
