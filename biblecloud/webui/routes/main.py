import logging
from typing import Optional

from flask import Blueprint, render_template, request
from flask.typing import ResponseReturnValue

from biblecloud.utils import format_timestamp
from biblecloud.webui.routes.utils.service import current_session, login_required

logger = logging.getLogger(__name__)

main_bp = Blueprint("main", __name__)

_NOTES_PREVIEW_LENGTH = 60


@main_bp.app_template_filter("timestampformat")
def timestampformat(value: Optional[str], fmt: str = "%b %d %y %H:%M") -> str:
    return format_timestamp(value, fmt)


@main_bp.app_template_filter("notespreview")
def notespreview(value: Optional[str], length: int = _NOTES_PREVIEW_LENGTH) -> str:
    text = " ".join((value or "").split())
    if len(text) <= length:
        return text
    return text[: length - 1].rstrip() + "…"


@main_bp.route("/")
@login_required
def index() -> ResponseReturnValue:
    reading = current_session()
    if "q" in request.args:
        reading.set_search_term(request.args.get("q"))
    chapters = reading.visible_chapters()
    return render_template(
        "index.html",
        chapters=chapters,
        read_status=reading.read_status,
        search_term=reading.search_term,
        user=reading.user,
        is_loading=reading.is_loading,
        load_error=reading.load_error,
    )


@main_bp.route("/menu")
@login_required
def menu() -> ResponseReturnValue:
    return render_template("menu.html", user=current_session().user)
