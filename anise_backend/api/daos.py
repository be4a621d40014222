"""
DAO, membership and treasury routes.
"""
from flask import Blueprint, jsonify, request

from ..models import Page, parse_request
from .auth import current_identity, json_body, require_identity, services

bp = Blueprint("daos", __name__, url_prefix="/api/daos")


def page_from_args() -> Page:
    return parse_request(Page, request.args.to_dict())


@bp.route("", methods=["POST"])
@require_identity
def create_dao():
    return jsonify(services().daos.create_dao(json_body(), current_identity())), 201


@bp.route("", methods=["GET"])
def list_daos():
    daos = services().reads.list_daos(
        search=request.args.get("search"),
        sort_by=request.args.get("sortBy", "recent"),
        member_count=request.args.get("memberCount"),
        page=page_from_args(),
    )
    return jsonify({"daos": daos})


@bp.route("/<dao>", methods=["GET"])
def get_dao(dao):
    return jsonify(services().daos.get_dao(dao))


@bp.route("/<dao>/modules", methods=["GET"])
def get_modules(dao):
    return jsonify({"modules": services().reads.dao_modules(dao)})


@bp.route("/<dao>/members", methods=["GET"])
def list_members(dao):
    return jsonify({"members": services().reads.list_members(dao, page_from_args())})


@bp.route("/<dao>/members/<member>", methods=["GET"])
def get_member(dao, member):
    return jsonify(services().reads.get_member(dao, member))


@bp.route("/<dao>/join-requests", methods=["GET"])
def list_join_requests(dao):
    requests_ = services().reads.list_join_requests(dao, request.args.get("status"), page_from_args())
    return jsonify({"joinRequests": requests_})


@bp.route("/<dao>/join-requests", methods=["POST"])
@require_identity
def request_join(dao):
    return jsonify(services().members.request_join(dao, json_body(), current_identity())), 201


@bp.route("/<dao>/join-requests/<applicant>/approve", methods=["POST"])
@require_identity
def approve_join(dao, applicant):
    return jsonify(services().members.approve_join(dao, applicant, json_body(), current_identity()))


@bp.route("/<dao>/join-requests/<applicant>/reject", methods=["POST"])
@require_identity
def reject_join(dao, applicant):
    return jsonify(services().members.reject_join(dao, applicant, json_body(), current_identity()))


@bp.route("/<dao>/treasury", methods=["GET"])
def get_treasury(dao):
    return jsonify(services().reads.treasury(dao))


@bp.route("/<dao>/treasury/transactions", methods=["GET"])
def list_treasury_transactions(dao):
    return jsonify({"transactions": services().reads.treasury_transactions(dao, page_from_args())})
