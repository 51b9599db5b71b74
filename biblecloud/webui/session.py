from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, TypeVar

from biblecloud.auth import AuthProvider, AuthState, SessionContext
from biblecloud.catalog import Chapter, filter_chapters, index_chapters
from biblecloud.confirmation import UnreadConfirmation
from biblecloud.errors import CatalogError, NotAuthenticatedError, StoreAuthorizationError, StoreError
from biblecloud.models import AuthUser, ReadRecord, ReadStatus
from biblecloud.read_status import ReadStatusAdapter, RemoteResult, apply_remote_result

logger = logging.getLogger(__name__)

CatalogLoader = Callable[[], List[Chapter]]
T = TypeVar("T")


class ReadingSession:
    """State of one browser session: auth context, read status cache, catalog and search."""

    def __init__(
        self,
        session_id: str,
        *,
        context: SessionContext,
        adapter: ReadStatusAdapter,
        catalog_loader: CatalogLoader,
    ) -> None:
        self.id = session_id
        self.context = context
        self.unread = UnreadConfirmation()
        self.read_status: ReadStatus = {}
        self.search_term = ""
        self.is_loading = False
        self.load_error: Optional[str] = None
        self.created_at = time.time()
        self.last_seen = self.created_at
        self._adapter = adapter
        self._catalog_loader = catalog_loader
        self._catalog: Optional[List[Chapter]] = None
        self._chapters_by_id: Dict[str, Chapter] = {}
        self._lock = threading.RLock()
        self._unsubscribe: Optional[Callable[[], None]] = context.subscribe(self._on_auth_change)

    # Auth ---------------------------------------------------------------
    @property
    def user(self) -> Optional[AuthUser]:
        return self.context.user

    @property
    def is_authenticated(self) -> bool:
        return self.context.state is AuthState.AUTHENTICATED

    def _on_auth_change(self, state: AuthState, user: Optional[AuthUser]) -> None:
        if state is AuthState.AUTHENTICATED and user is not None:
            self.reload()
        elif state is AuthState.UNAUTHENTICATED:
            with self._lock:
                self.read_status = {}
                self.unread.reset()

    def reload(self) -> ReadStatus:
        with self._lock:
            self.is_loading = True
            try:
                self.read_status = self._with_user(self._adapter.load_all)
                self.load_error = None
            except NotAuthenticatedError:
                logger.info("Session %s signed out while loading read chapters", self.id)
            except StoreError as exc:
                logger.exception("Error loading read chapters")
                self.load_error = str(exc)
            finally:
                self.is_loading = False
            return self.read_status

    # Catalog ------------------------------------------------------------
    def catalog(self) -> List[Chapter]:
        with self._lock:
            if self._catalog is None:
                try:
                    chapters = self._catalog_loader()
                except CatalogError:
                    logger.exception("Unable to load chapter catalog")
                    return []
                self._catalog = chapters
                self._chapters_by_id = index_chapters(chapters)
            return self._catalog

    def chapter(self, chapter_id: str) -> Optional[Chapter]:
        self.catalog()
        return self._chapters_by_id.get(chapter_id)

    def set_search_term(self, term: Optional[str]) -> None:
        self.search_term = (term or "").strip()

    def visible_chapters(self) -> List[Chapter]:
        return filter_chapters(self.catalog(), self.search_term)

    # Read status actions -----------------------------------------------
    def _with_user(self, action: Callable[[Optional[AuthUser]], T]) -> T:
        """Run a store action for the current user, renewing a rejected ID token once."""
        user = self.context.active_user()
        try:
            return action(user)
        except StoreAuthorizationError:
            logger.info("ID token of session %s was rejected, refreshing", self.id)
            return action(self.context.refresh())

    def _apply(self, result: RemoteResult) -> ReadStatus:
        self.read_status = apply_remote_result(self.read_status, result)
        return self.read_status

    def mark_read(self, chapter: Chapter) -> ReadStatus:
        with self._lock:
            return self._apply(self._with_user(lambda user: self._adapter.mark_read(user, chapter)))

    def save_notes(self, chapter: Chapter, text: str) -> ReadStatus:
        with self._lock:
            return self._apply(self._with_user(lambda user: self._adapter.save_notes(user, chapter, text)))

    def detail(self, chapter: Chapter) -> Optional[ReadRecord]:
        return self._with_user(lambda user: self._adapter.fetch_record(user, chapter.id))

    def open_detail(self, chapter: Chapter) -> Optional[ReadRecord]:
        with self._lock:
            self.unread.reset()
            return self.detail(chapter)

    def request_unread(self, chapter: Chapter) -> None:
        self.unread.request(chapter.id)

    def cancel_unread(self) -> None:
        self.unread.cancel()

    def confirm_unread(self, chapter: Chapter) -> ReadStatus:
        with self._lock:
            result = self.unread.confirm(
                chapter.id,
                lambda: self._with_user(lambda user: self._adapter.mark_unread(user, chapter)),
            )
            return self._apply(result)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class SessionRegistry:
    """In-process table of reading sessions keyed by the id kept in the session cookie."""

    def __init__(
        self,
        *,
        provider: AuthProvider,
        adapter: ReadStatusAdapter,
        catalog_loader: CatalogLoader,
        idle_timeout: float = 60 * 60 * 24 * 7,
    ) -> None:
        self._provider = provider
        self._adapter = adapter
        self._catalog_loader = catalog_loader
        self._idle_timeout = idle_timeout
        self._sessions: Dict[str, ReadingSession] = {}
        self._lock = threading.RLock()

    @property
    def provider(self) -> AuthProvider:
        return self._provider

    def create(self) -> ReadingSession:
        session = ReadingSession(
            uuid.uuid4().hex,
            context=SessionContext(self._provider),
            adapter=self._adapter,
            catalog_loader=self._catalog_loader,
        )
        session.context.resolve(None)
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: Optional[str]) -> Optional[ReadingSession]:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            session.last_seen = time.time()
        return session

    def get_or_create(self, session_id: Optional[str]) -> ReadingSession:
        self.prune()
        return self.get(session_id) or self.create()

    def discard(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def prune(self, now: Optional[float] = None) -> int:
        cutoff = (now or time.time()) - self._idle_timeout
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if session.last_seen < cutoff]
        for session_id in expired:
            self.discard(session_id)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
