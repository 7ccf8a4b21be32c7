# factopay_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os
from datetime import datetime

from flask import Flask
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .extensions import init_extensions, register_cli
from .errors import register_error_handlers
from .services.gateway import init_gateway
from .blueprints.payments import bp as payments_bp
from .blueprints.admin import admin_bp

CONFIGS = {
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}

def create_app(config_object: type[Config] | None = None, overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app_env = os.getenv("APP_ENV", "").lower()
    app.config.from_object(config_object or CONFIGS.get(app_env, Config))
    if overrides:
        app.config.update(overrides)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Extensions (DB/Migrate)
    init_extensions(app)

    # Gateway client: built once here, fails fast on missing credentials
    init_gateway(app)       # app.extensions["gateway"]
    app.config["STARTED_AT"] = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)
    register_error_handlers(app)
    # CLI (e.g.: flask init-db, flask create-admin)
    register_cli(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "startedAt": app.config["STARTED_AT"]}

    return app
