import logging
from typing import Optional

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask.typing import ResponseReturnValue

from biblecloud.catalog import Chapter
from biblecloud.errors import ConfirmationError, NotAuthenticatedError, StoreError
from biblecloud.models import ReadRecord
from biblecloud.webui.routes.utils.service import (
    SIGN_IN_REQUIRED_MESSAGE,
    STORE_ERROR_MESSAGE,
    current_session,
    login_required,
    require_chapter,
)
from biblecloud.webui.session import ReadingSession

logger = logging.getLogger(__name__)

chapters_bp = Blueprint("chapters", __name__)


def _back_to_list() -> ResponseReturnValue:
    return redirect(url_for("main.index"))


def _signed_out() -> ResponseReturnValue:
    flash(SIGN_IN_REQUIRED_MESSAGE, "error")
    return redirect(url_for("auth.login"))


def _last_known_record(reading: ReadingSession, chapter: Chapter) -> Optional[ReadRecord]:
    try:
        return reading.detail(chapter)
    except (StoreError, NotAuthenticatedError):
        logger.exception("Error loading chapter %s", chapter.id)
        return None


def _render_detail(
    reading: ReadingSession,
    chapter: Chapter,
    record: Optional[ReadRecord],
    *,
    notes: Optional[str] = None,
    status: int = 200,
) -> ResponseReturnValue:
    return (
        render_template(
            "chapter.html",
            chapter=chapter,
            record=record,
            notes=notes if notes is not None else (record.notes if record else ""),
            confirm_unread=reading.unread.is_pending(chapter.id),
            user=reading.user,
        ),
        status,
    )


@chapters_bp.get("/<chapter_id>")
@login_required
def detail(chapter_id: str) -> ResponseReturnValue:
    reading = current_session()
    chapter = require_chapter(reading, chapter_id)
    try:
        record = reading.open_detail(chapter)
    except NotAuthenticatedError:
        return _signed_out()
    except StoreError:
        logger.exception("Error loading chapter %s", chapter.id)
        flash(STORE_ERROR_MESSAGE, "error")
        record = None
    return _render_detail(reading, chapter, record)


@chapters_bp.post("/<chapter_id>/read")
@login_required
def mark_read(chapter_id: str) -> ResponseReturnValue:
    reading = current_session()
    chapter = require_chapter(reading, chapter_id)
    try:
        reading.mark_read(chapter)
    except NotAuthenticatedError:
        return _signed_out()
    except StoreError:
        logger.exception("Error updating read status of %s", chapter.id)
        flash(STORE_ERROR_MESSAGE, "error")
    return _back_to_list()


@chapters_bp.post("/<chapter_id>/notes")
@login_required
def save_notes(chapter_id: str) -> ResponseReturnValue:
    reading = current_session()
    chapter = require_chapter(reading, chapter_id)
    notes = request.form.get("notes", "")
    try:
        reading.save_notes(chapter, notes)
    except NotAuthenticatedError:
        return _signed_out()
    except StoreError:
        logger.exception("Error saving notes of %s", chapter.id)
        flash(STORE_ERROR_MESSAGE, "error")
        return _render_detail(reading, chapter, _last_known_record(reading, chapter), notes=notes, status=502)
    flash("Notas guardadas!", "success")
    return redirect(url_for("chapters.detail", chapter_id=chapter.id))


@chapters_bp.post("/<chapter_id>/unread")
@login_required
def request_unread(chapter_id: str) -> ResponseReturnValue:
    reading = current_session()
    chapter = require_chapter(reading, chapter_id)
    try:
        reading.request_unread(chapter)
        record = reading.detail(chapter)
    except ConfirmationError as exc:
        flash(str(exc), "error")
        return _render_detail(reading, chapter, _last_known_record(reading, chapter), status=409)
    except NotAuthenticatedError:
        return _signed_out()
    except StoreError:
        logger.exception("Error loading chapter %s", chapter.id)
        flash(STORE_ERROR_MESSAGE, "error")
        record = None
    return _render_detail(reading, chapter, record)


@chapters_bp.post("/<chapter_id>/unread/cancel")
@login_required
def cancel_unread(chapter_id: str) -> ResponseReturnValue:
    reading = current_session()
    chapter = require_chapter(reading, chapter_id)
    try:
        reading.cancel_unread()
    except ConfirmationError as exc:
        flash(str(exc), "error")
    return redirect(url_for("chapters.detail", chapter_id=chapter.id))


@chapters_bp.post("/<chapter_id>/unread/confirm")
@login_required
def confirm_unread(chapter_id: str) -> ResponseReturnValue:
    reading = current_session()
    chapter = require_chapter(reading, chapter_id)
    try:
        reading.confirm_unread(chapter)
    except ConfirmationError as exc:
        flash(str(exc), "error")
        return _render_detail(reading, chapter, _last_known_record(reading, chapter), status=409)
    except NotAuthenticatedError:
        return _signed_out()
    except StoreError:
        logger.exception("Error marking %s as unread", chapter.id)
        flash(STORE_ERROR_MESSAGE, "error")
        return redirect(url_for("chapters.detail", chapter_id=chapter.id))
    return _back_to_list()
