"""
Routes for the DAO entity collections (proposals, claims, tasks, events,
documents, announcements).
"""
from flask import Blueprint, jsonify, request

from .auth import current_identity, json_body, require_identity, services
from .daos import page_from_args

bp = Blueprint("entities", __name__, url_prefix="/api/daos")

# collection -> (id field, response key for lists)
COLLECTIONS = {
    "proposals": "proposalId",
    "claims": "claimId",
    "tasks": "taskId",
    "events": "eventId",
    "documents": "documentId",
    "announcements": "announcementId",
}
VOTABLE = ("proposals", "claims")
EDITABLE = ("tasks", "events", "announcements")


def _register(collection: str, id_field: str) -> None:
    base = f"/<dao>/{collection}"

    def list_view(dao):
        reads = services().reads
        if collection == "announcements":
            items = reads.active_announcements(dao, page_from_args())
        elif collection == "events":
            items = reads.list_events(dao, page_from_args())
        else:
            items = reads.list_entities(dao, collection, id_field, page_from_args())
        return jsonify({collection: items})

    def get_view(dao, entity_id):
        return jsonify(services().reads.get_entity(dao, collection, entity_id, id_field))

    @require_identity
    def create_view(dao):
        result = services().pipelines[collection].create(dao, json_body(), current_identity())
        return jsonify(result), 201

    bp.add_url_rule(base, f"list_{collection}", list_view, methods=["GET"])
    bp.add_url_rule(f"{base}/<entity_id>", f"get_{collection}", get_view, methods=["GET"])
    bp.add_url_rule(base, f"create_{collection}", create_view, methods=["POST"])

    if collection in VOTABLE:
        @require_identity
        def vote_view(dao, entity_id):
            return jsonify(services().pipelines[collection].vote(dao, entity_id, json_body(), current_identity()))

        def votes_view(dao, entity_id):
            return jsonify({"votes": services().reads.votes(dao, collection, entity_id)})

        bp.add_url_rule(f"{base}/<entity_id>/vote", f"vote_{collection}", vote_view, methods=["POST"])
        bp.add_url_rule(f"{base}/<entity_id>/votes", f"votes_{collection}", votes_view, methods=["GET"])

    if collection in EDITABLE:
        @require_identity
        def update_view(dao, entity_id):
            return jsonify(services().pipelines[collection].update(dao, entity_id, json_body(), current_identity()))

        @require_identity
        def delete_view(dao, entity_id):
            return jsonify(services().pipelines[collection].delete(dao, entity_id, json_body(), current_identity()))

        bp.add_url_rule(f"{base}/<entity_id>", f"update_{collection}", update_view, methods=["PUT"])
        bp.add_url_rule(f"{base}/<entity_id>", f"delete_{collection}", delete_view, methods=["DELETE"])


for _collection, _id_field in COLLECTIONS.items():
    _register(_collection, _id_field)


@bp.route("/<dao>/tasks/<entity_id>/status", methods=["PUT"])
@require_identity
def update_task_status(dao, entity_id):
    return jsonify(services().pipelines["tasks"].update_status(dao, entity_id, json_body(), current_identity()))


@bp.route("/<dao>/documents/pending", methods=["GET"])
def list_pending_documents(dao):
    return jsonify({"documents": services().reads.list_documents(dao, executed=False, page=page_from_args())})


@bp.route("/<dao>/documents/executed", methods=["GET"])
def list_executed_documents(dao):
    return jsonify({"documents": services().reads.list_documents(dao, executed=True, page=page_from_args())})


@bp.route("/<dao>/documents/<entity_id>/sign", methods=["POST"])
@require_identity
def sign_document(dao, entity_id):
    return jsonify(services().pipelines["documents"].sign(dao, entity_id, json_body(), current_identity()))


@bp.route("/<dao>/events/upcoming", methods=["GET"])
def upcoming_events(dao):
    limit = request.args.get("limit", "10")
    limit = int(limit) if limit.isdigit() and 0 < int(limit) <= 100 else 10
    return jsonify({"events": services().reads.upcoming_events(dao, limit=limit)})
