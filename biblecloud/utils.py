import json
import logging
import os
import platform
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from dotenv import load_dotenv, find_dotenv

logger = logging.getLogger(__name__)


def _load_environment() -> None:
    explicit_path = os.environ.get("BIBLECLOUD_ENV_FILE")
    if explicit_path:
        load_dotenv(explicit_path, override=False)
        return
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


_load_environment()


def get_resource_path(package, resource):
    """
    Get the path to a bundled resource file.

    Args:
        package (str): Package name containing the resource (e.g., 'biblecloud.data')
        resource (str): Resource filename (e.g., 'bible_chapters.json')

    Returns:
        str: Path to the resource file, or None if not found
    """
    from importlib import resources

    try:
        candidate = resources.files(package).joinpath(resource)
        if candidate.is_file():
            return str(candidate)
    except (ImportError, FileNotFoundError, TypeError):
        pass

    parts = package.split(".")
    rel_path = os.path.join(
        os.path.dirname(os.path.abspath(__file__)), *parts[1:], resource
    )
    if os.path.exists(rel_path):
        return rel_path
    return None


def ensure_directory(path):
    resolved = os.path.abspath(os.path.expanduser(str(path)))
    os.makedirs(resolved, exist_ok=True)
    return resolved


@lru_cache(maxsize=1)
def get_user_settings_dir():
    override = os.environ.get("BIBLECLOUD_SETTINGS_DIR")
    if override:
        return ensure_directory(override)

    data_root = os.environ.get("BIBLECLOUD_DATA")
    if data_root:
        try:
            return ensure_directory(os.path.join(data_root, "settings"))
        except OSError:
            pass

    from platformdirs import user_config_dir

    if platform.system() != "Windows":
        legacy_dir = os.path.join(os.path.expanduser("~"), ".config", "biblecloud")
        if os.path.exists(legacy_dir):
            return ensure_directory(legacy_dir)

    config_dir = user_config_dir("biblecloud", appauthor=False, roaming=True, ensure_exists=True)
    return ensure_directory(config_dir)


def get_user_config_path():
    return os.path.join(get_user_settings_dir(), "config.json")


def load_config() -> Dict[str, Any]:
    try:
        with open(get_user_config_path(), "r", encoding="utf-8") as f:
            payload = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("Unable to read config file: %s", exc)
        return {}
    return payload if isinstance(payload, dict) else {}


def save_config(config: Dict[str, Any]) -> None:
    try:
        with open(get_user_config_path(), "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)
    except OSError as exc:
        logger.error("Unable to write config file: %s", exc)


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_iso_timestamp(value: str) -> datetime:
    text = (value or "").strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[str], fmt: str = "%b %d %y %H:%M") -> str:
    if not value:
        return ""
    try:
        return parse_iso_timestamp(value).astimezone().strftime(fmt)
    except (TypeError, ValueError):
        logger.error("Error formatting date: %r", value)
        return "Invalid date"
