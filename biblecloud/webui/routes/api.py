from typing import Any, Dict

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from biblecloud.webui.routes.utils.service import current_session

api_bp = Blueprint("api", __name__)


@api_bp.before_request
def _require_authenticated() -> Any:
    if not current_session().is_authenticated:
        return jsonify({"error": "Not authenticated"}), 401
    return None


@api_bp.get("/chapters")
def api_chapters() -> ResponseReturnValue:
    reading = current_session()
    if "q" in request.args:
        reading.set_search_term(request.args.get("q"))
    items = []
    for chapter in reading.visible_chapters():
        payload: Dict[str, Any] = chapter.to_dict()
        entry = reading.read_status.get(chapter.id)
        payload["isRead"] = entry is not None
        payload["latestReadTimestamp"] = entry.latest_read_timestamp if entry else None
        payload["notes"] = entry.notes if entry else ""
        items.append(payload)
    return jsonify({"searchTerm": reading.search_term, "chapters": items})


@api_bp.get("/read-status")
def api_read_status() -> ResponseReturnValue:
    reading = current_session()
    return jsonify({chapter_id: entry.to_dict() for chapter_id, entry in reading.read_status.items()})
