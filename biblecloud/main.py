"""Entry point that launches the web UI."""

from __future__ import annotations

from biblecloud.webui.app import main as _run_web_ui


def main() -> None:
    """Launch the Flask-based web UI."""

    _run_web_ui()


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    main()
