"""
User profile and wallet routes.
"""
from flask import Blueprint, jsonify, request

from ..exceptions import ValidationError
from .auth import current_identity, json_body, require_identity, services
from .daos import page_from_args

bp = Blueprint("users", __name__, url_prefix="/api/users")


@bp.route("/me", methods=["GET"])
@require_identity
def get_profile():
    identity = current_identity()
    return jsonify({"uid": identity.uid, "walletAddress": identity.wallet_address, **identity.profile})


@bp.route("/wallet/connect", methods=["POST"])
@require_identity
def connect_wallet():
    return jsonify(services().wallets.connect_wallet(current_identity(), json_body()))


@bp.route("/<uid>/daos", methods=["GET"])
def get_user_daos(uid):
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "10"))
    except ValueError:
        raise ValidationError("page and limit must be integers")
    return jsonify(services().reads.user_daos(uid, page=page, limit=limit, search=request.args.get("search")))


@bp.route("/<uid>/notifications", methods=["GET"])
@require_identity
def get_notifications(uid):
    return jsonify({"notifications": services().reads.user_notifications(uid, page_from_args())})
