from __future__ import annotations

import logging
import os
import sys
from functools import partial
from pathlib import Path
from typing import Any, Optional

from flask import Flask

from biblecloud.auth import build_auth_provider
from biblecloud.catalog import load_catalog
from biblecloud.read_status import ReadStatusAdapter
from biblecloud.settings import load_settings
from biblecloud.stores import build_store
from biblecloud.utils import get_user_settings_dir

from .session import SessionRegistry


class _SuppressSuccessfulAccessFilter(logging.Filter):
    """Filter out successful (2xx) werkzeug access logs."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - small utility
        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed record
            return True
        # Werkzeug access logs end with the status code, e.g. "GET /path HTTP/1.1" 200 -
        return " 200 " not in message and " 201 " not in message and " 204 " not in message


_access_log_filter_attached = False


def _get_secret_key() -> str:
    env_key = os.environ.get("BIBLECLOUD_SECRET_KEY")
    if env_key:
        return env_key

    try:
        settings_dir = Path(get_user_settings_dir())
        settings_dir.mkdir(parents=True, exist_ok=True)
        secret_file = settings_dir / ".secret_key"
        if secret_file.exists():
            return secret_file.read_text(encoding="utf-8").strip()

        key = os.urandom(24).hex()
        secret_file.write_text(key, encoding="utf-8")
        return key
    except OSError:
        # Sessions will not survive a restart
        return os.urandom(24).hex()


def create_app(config: Optional[dict[str, Any]] = None) -> Flask:
    app = Flask(
        __name__,
        static_folder="static",
        template_folder="templates",
    )
    base_config: dict[str, Any] = {
        "SECRET_KEY": None,
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
    }
    if config:
        base_config.update(config)
    if not base_config.get("SECRET_KEY"):
        base_config["SECRET_KEY"] = _get_secret_key()
    app.config.update(base_config)

    settings = load_settings(app.config.get("BIBLECLOUD_SETTINGS"))
    store = app.config.get("DOCUMENT_STORE") or build_store(settings)
    provider = app.config.get("AUTH_PROVIDER") or build_auth_provider(settings)
    catalog_loader = app.config.get("CATALOG_LOADER") or partial(
        load_catalog,
        settings.get("catalog_source") or None,
        timeout=settings["http_timeout"],
    )

    app.extensions["reading_sessions"] = SessionRegistry(
        provider=provider,
        adapter=ReadStatusAdapter(store, clock=app.config.get("CLOCK")),
        catalog_loader=catalog_loader,
    )

    from biblecloud.webui.routes import (
        main_bp,
        chapters_bp,
        auth_bp,
        api_bp,
    )

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(chapters_bp, url_prefix="/chapters")
    app.register_blueprint(api_bp, url_prefix="/api")

    global _access_log_filter_attached
    if not _access_log_filter_attached:
        logging.getLogger("werkzeug").addFilter(_SuppressSuccessfulAccessFilter())
        _access_log_filter_attached = True

    return app


def _configure_logging(debug: bool) -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def main() -> None:
    debug = os.environ.get("BIBLECLOUD_DEBUG", "false").lower() == "true"
    _configure_logging(debug)
    app = create_app()
    host = os.environ.get("BIBLECLOUD_HOST", "0.0.0.0")
    port = int(os.environ.get("BIBLECLOUD_PORT", "8810"))
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":  # pragma: no cover
    main()
