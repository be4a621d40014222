"""
Direct-debit payment and webhook routes.
"""
import logging

from flask import Blueprint, jsonify

from .auth import current_identity, json_body, require_identity, services

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__, url_prefix="/api")


@bp.route("/start-redirect-flow", methods=["POST"])
@require_identity
def start_redirect_flow():
    return jsonify(services().payments.start_flow(current_identity(), json_body()))


@bp.route("/confirm-redirect-flow", methods=["POST"])
@require_identity
def confirm_redirect_flow():
    return jsonify(services().payments.confirm_flow(current_identity(), json_body()))


@bp.route("/create-payment", methods=["POST"])
@require_identity
def create_payment():
    return jsonify(services().payments.create_payment(current_identity(), json_body()))


@bp.route("/create-subscription", methods=["POST"])
@require_identity
def create_subscription():
    return jsonify(services().payments.create_subscription(current_identity(), json_body()))


@bp.route("/subscriptions", methods=["GET"])
@require_identity
def list_subscriptions():
    return jsonify(services().payments.list_subscriptions(current_identity()))


@bp.route("/subscriptions/status", methods=["PUT"])
@require_identity
def update_subscription_status():
    return jsonify(services().payments.update_subscription_status(current_identity(), json_body()))


@bp.route("/subscriptions/<subscription_id>/cancel", methods=["POST"])
@require_identity
def cancel_subscription(subscription_id):
    return jsonify(services().payments.cancel_subscription(current_identity(), subscription_id))


@bp.route("/mandate", methods=["GET"])
@require_identity
def get_mandate():
    return jsonify(services().payments.get_mandate(current_identity()))


@bp.route("/webhooks/gocardless", methods=["POST"])
def gocardless_webhook():
    counts = services().webhooks.handle(json_body())
    if counts is None:
        return "", 204
    return jsonify({"received": True, **counts})
