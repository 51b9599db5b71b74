import logging

from flask import Blueprint, jsonify, redirect, render_template, request, url_for
from flask.typing import ResponseReturnValue

from biblecloud.errors import AuthError, BibleCloudError
from biblecloud.webui.routes.utils.service import current_session

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/login", methods=["GET", "POST"])
def login() -> ResponseReturnValue:
    reading = current_session()
    if request.method == "GET":
        if reading.is_authenticated:
            return redirect(url_for("main.index"))
        return render_template("login.html", email="", error=None)

    email = request.form.get("email", "").strip()
    password = request.form.get("password", "")
    try:
        reading.context.sign_in(email, password)
    except AuthError as exc:
        return render_template("login.html", email=email, error=exc.message), 401
    return redirect(url_for("main.index"))


@auth_bp.get("/logout")
def logout() -> ResponseReturnValue:
    reading = current_session()
    try:
        reading.context.sign_out()
    except BibleCloudError:
        logger.exception("Error logging out")
        return jsonify({"error": "Failed to log out"}), 500

    host = request.headers.get("X-Forwarded-Host") or request.headers.get("Host")
    protocol = request.headers.get("X-Forwarded-Proto") or request.scheme
    if not host:
        logger.error("Error logging out: could not determine host for redirect")
        return jsonify({"error": "Failed to determine redirect URL"}), 500
    return redirect(f"{protocol}://{host}{url_for('auth.login')}")
