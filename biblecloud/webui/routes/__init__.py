from biblecloud.webui.routes.main import main_bp
from biblecloud.webui.routes.chapters import chapters_bp
from biblecloud.webui.routes.auth import auth_bp
from biblecloud.webui.routes.api import api_bp

__all__ = [
    "main_bp",
    "chapters_bp",
    "auth_bp",
    "api_bp",
]
