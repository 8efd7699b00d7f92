"""Queue blueprint: /api/queue/*

Read-only views over the telecaller's calling order. The client keeps its
own index; nothing here writes.
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required

from leadcrm.decorators import scoped_telecaller_id
from leadcrm.services import queue_service

queue_bp = Blueprint("queue", __name__, url_prefix="/api/queue")


def _position(index, lead, length):
    return {"index": index, "lead": lead.to_dict(), "queueLength": length}


@queue_bp.route("", methods=["GET"])
@login_required
def queue():
    args = request.args
    telecaller_id = scoped_telecaller_id(args.get("telecallerId"))
    leads = queue_service.ordered_queue(
        telecaller_id,
        status_filter=args.get("status"),
        stage_filter=args.get("stage"),
    )
    return jsonify({"leads": [lead.to_dict() for lead in leads], "total": len(leads)})


@queue_bp.route("/current", methods=["GET"])
@login_required
def current():
    args = request.args
    telecaller_id = scoped_telecaller_id(args.get("telecallerId"))
    return jsonify(_position(*queue_service.current_lead(
        telecaller_id,
        index=args.get("index"),
        status_filter=args.get("status"),
        stage_filter=args.get("stage"),
    )))


@queue_bp.route("/next", methods=["POST"])
@login_required
def next_lead():
    """Body: {"currentIndex": 2}. Wraps to the front at the end."""
    data = request.get_json(silent=True) or {}
    telecaller_id = scoped_telecaller_id(data.get("telecallerId"))
    return jsonify(_position(*queue_service.advance_to_next(
        telecaller_id,
        data.get("currentIndex"),
        status_filter=data.get("status"),
        stage_filter=data.get("stage"),
    )))
