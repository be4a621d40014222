"""
Thin Flask HTTP layer over the backend services.
"""
import logging
from typing import Optional

from flask import Flask
from flask_cors import CORS

from ..services import ServiceContainer, build_services
from . import daos, entities, payments, users
from .errors import register_error_handlers

logger = logging.getLogger(__name__)


def create_app(services: Optional[ServiceContainer] = None) -> Flask:
    """
    Application factory.

    Args:
        services: Wired services; built from the environment when omitted
    """
    app = Flask(__name__)
    CORS(app)
    app.extensions["anise"] = services or build_services()

    for module in (daos, entities, users, payments):
        app.register_blueprint(module.bp)
    register_error_handlers(app)

    @app.route("/health", methods=["GET"])
    def health():
        return {"status": "ok"}

    logger.info("Flask app created")
    return app


__all__ = ['create_app']
