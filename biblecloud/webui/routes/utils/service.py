from functools import wraps
from typing import Any, Callable, cast

from flask import abort, current_app, flash, redirect, session, url_for

from biblecloud.catalog import Chapter
from biblecloud.webui.session import ReadingSession, SessionRegistry

SESSION_COOKIE_KEY = "reading_session"
STORE_ERROR_MESSAGE = "Ocurrió un error al guardar. Inténtalo de nuevo."
SIGN_IN_REQUIRED_MESSAGE = "Inicia sesión para continuar."


def get_registry() -> SessionRegistry:
    return current_app.extensions["reading_sessions"]


def current_session() -> ReadingSession:
    reading = get_registry().get_or_create(session.get(SESSION_COOKIE_KEY))
    session[SESSION_COOKIE_KEY] = reading.id
    return reading


def require_chapter(reading: ReadingSession, chapter_id: str) -> Chapter:
    chapter = reading.chapter(chapter_id)
    if chapter is None:
        abort(404)
    return cast(Chapter, chapter)


def login_required(view: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not current_session().is_authenticated:
            flash(SIGN_IN_REQUIRED_MESSAGE, "error")
            return redirect(url_for("auth.login"))
        return view(*args, **kwargs)

    return wrapper
