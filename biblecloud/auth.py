from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthError, NotAuthenticatedError, StoreError
from .models import AuthUser
from .utils import load_config, save_config

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/"

# ID tokens this close to expiry are refreshed before use
TOKEN_REFRESH_MARGIN = 300.0

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

AUTH_ERROR_MESSAGES: Dict[str, str] = {
    "auth/invalid-email": "Formato de correo inválido",
    "auth/invalid-credential": "Credenciales incorrectas. Por favor, verifica tu correo y contraseña.",
    "auth/user-not-found": "Usuario no encontrado. Verifica el correo electrónico.",
    "auth/wrong-password": "Contraseña incorrecta. Por favor, inténtalo de nuevo.",
}
DEFAULT_AUTH_ERROR_MESSAGE = "Ocurrió un error de autenticación. Por favor, inténtalo de nuevo."

# Identity Toolkit reports failures as upper-case messages, sometimes with a
# trailing " : detail" part.
_IDENTITY_TOOLKIT_CODES: Dict[str, str] = {
    "INVALID_EMAIL": "auth/invalid-email",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "USER_DISABLED": "auth/user-disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "MISSING_PASSWORD": "auth/missing-password",
    "TOKEN_EXPIRED": "auth/user-token-expired",
    "INVALID_REFRESH_TOKEN": "auth/invalid-refresh-token",
    "USER_NOT_FOUND": "auth/user-not-found",
}


def auth_error(code: str) -> AuthError:
    """Build an AuthError with the message shown to the user for ``code``."""
    message = AUTH_ERROR_MESSAGES.get(code)
    if message is None:
        logger.error("Authentication error: %s", code)
        message = DEFAULT_AUTH_ERROR_MESSAGE
    return AuthError(code, message)


def identity_toolkit_code(message: str) -> str:
    key = (message or "").split(":", 1)[0].strip().upper()
    return _IDENTITY_TOOLKIT_CODES.get(key, f"auth/{key.lower().replace('_', '-')}" if key else "auth/internal-error")


class AuthProvider:
    """Signs users in and out."""

    def sign_in(self, email: str, password: str) -> AuthUser:
        raise NotImplementedError

    def sign_out(self, user: Optional[AuthUser]) -> None:
        """Terminate the remote session of ``user``; stateless providers do nothing."""

    def refresh(self, user: AuthUser) -> AuthUser:
        """Return ``user`` with a renewed ID token."""
        return user


@dataclass(frozen=True)
class IdentityToolkitConfig:
    api_key: str
    base_url: str = IDENTITY_TOOLKIT_URL
    token_url: str = SECURE_TOKEN_URL
    timeout: float = 15.0
    verify_ssl: bool = True


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_code(body: Mapping[str, Any]) -> str:
    error = body.get("error") if isinstance(body.get("error"), Mapping) else {}
    return identity_toolkit_code(str(error.get("message") or ""))


class IdentityToolkitProvider(AuthProvider):
    """Email/password sign-in through the Firebase Identity Toolkit REST API.

    ID tokens are short-lived; ``refresh`` trades the refresh token for a new
    one through the Secure Token API.
    """

    def __init__(
        self,
        config: IdentityToolkitConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not config.api_key:
            raise ValueError("Firebase API key is required")
        self._config = config
        self._transport = transport
        self._clock = clock

    def _endpoint(self, base_url: str, method: str) -> str:
        # Colon-style method names must not be resolved as relative URLs
        return f"{base_url.rstrip('/')}/{method}"

    def _open_client(self) -> httpx.Client:
        return httpx.Client(
            headers={"Accept": "application/json"},
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            transport=self._transport,
        )

    def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            with self._open_client() as client:
                return client.post(url, params={"key": self._config.api_key}, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", url, exc)
            raise auth_error("auth/network-request-failed") from exc

    def _expires_at(self, expires_in: Any) -> Optional[float]:
        try:
            return self._clock() + float(expires_in)
        except (TypeError, ValueError):
            return None

    def sign_in(self, email: str, password: str) -> AuthUser:
        payload = {"email": email, "password": password, "returnSecureToken": True}
        response = self._post(self._endpoint(self._config.base_url, "accounts:signInWithPassword"), json=payload)
        body = _json_body(response)
        if response.is_error:
            raise auth_error(_error_code(body))

        uid = str(body.get("localId") or "")
        if not uid:
            raise auth_error("auth/internal-error")
        return AuthUser(
            uid=uid,
            email=str(body.get("email") or email),
            id_token=body.get("idToken"),
            refresh_token=body.get("refreshToken"),
            expires_at=self._expires_at(body.get("expiresIn")),
        )

    def refresh(self, user: AuthUser) -> AuthUser:
        if not user.refresh_token:
            raise auth_error("auth/user-token-expired")
        response = self._post(
            self._endpoint(self._config.token_url, "token"),
            data={"grant_type": "refresh_token", "refresh_token": user.refresh_token},
        )
        body = _json_body(response)
        if response.is_error:
            raise auth_error(_error_code(body))

        id_token = body.get("id_token")
        if not id_token:
            raise auth_error("auth/internal-error")
        logger.debug("Refreshed ID token of %s", user.email or user.uid)
        return AuthUser(
            uid=str(body.get("user_id") or user.uid),
            email=user.email,
            id_token=str(id_token),
            refresh_token=str(body.get("refresh_token") or user.refresh_token),
            expires_at=self._expires_at(body.get("expires_in")),
        )


def _load_local_users() -> Dict[str, Dict[str, str]]:
    users = load_config().get("local_users", {})
    if not isinstance(users, Mapping):
        return {}
    return {str(email).lower(): dict(entry) for email, entry in users.items() if isinstance(entry, Mapping)}


def add_local_user(email: str, password: str) -> AuthUser:
    normalized = (email or "").strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValueError(f"Invalid email address: {email!r}")
    if not password:
        raise ValueError("Password is required")
    cfg = load_config()
    users = _load_local_users()
    existing = users.get(normalized, {})
    uid = existing.get("uid") or uuid.uuid4().hex
    users[normalized] = {"uid": uid, "password_hash": generate_password_hash(password)}
    cfg["local_users"] = users
    save_config(cfg)
    return AuthUser(uid=uid, email=normalized)


def remove_local_user(email: str) -> bool:
    normalized = (email or "").strip().lower()
    cfg = load_config()
    users = _load_local_users()
    if normalized not in users:
        return False
    users.pop(normalized)
    cfg["local_users"] = users
    save_config(cfg)
    return True


def list_local_users() -> List[str]:
    return sorted(_load_local_users())


class LocalAuthProvider(AuthProvider):
    """Checks credentials against the ``local_users`` entries of config.json."""

    def sign_in(self, email: str, password: str) -> AuthUser:
        normalized = (email or "").strip().lower()
        if not _EMAIL_RE.match(normalized):
            raise auth_error("auth/invalid-email")
        entry = _load_local_users().get(normalized)
        if entry is None:
            raise auth_error("auth/user-not-found")
        if not check_password_hash(entry.get("password_hash", ""), password or ""):
            raise auth_error("auth/wrong-password")
        return AuthUser(uid=entry["uid"], email=normalized)


def build_auth_provider(settings: Mapping[str, Any]) -> AuthProvider:
    backend = str(settings.get("backend") or "local").lower()
    if backend == "firebase":
        return IdentityToolkitProvider(
            IdentityToolkitConfig(
                api_key=str(settings.get("firebase_api_key") or ""),
                timeout=float(settings.get("http_timeout") or 15.0),
            )
        )
    if backend == "local":
        return LocalAuthProvider()
    raise ValueError(f"Unknown auth backend: {backend}")


class AuthState(str, Enum):
    UNKNOWN = "unknown"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


AuthListener = Callable[[AuthState, Optional[AuthUser]], None]


class SessionContext:
    """Current user of one client session plus auth-state notifications.

    Listeners are called once on subscription with the current state and then
    on every change. ``subscribe`` returns the matching unsubscribe callable.
    Token refreshes replace the user silently; a rejected refresh signs the
    session out.
    """

    def __init__(
        self,
        provider: AuthProvider,
        *,
        clock: Callable[[], float] = time.time,
        refresh_margin: float = TOKEN_REFRESH_MARGIN,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self._refresh_margin = refresh_margin
        self._lock = threading.RLock()
        self._state = AuthState.UNKNOWN
        self._user: Optional[AuthUser] = None
        self._listeners: List[AuthListener] = []

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)
            state, user = self._state, self._user
        listener(state, user)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: AuthState, user: Optional[AuthUser]) -> None:
        with self._lock:
            self._state = state
            self._user = user
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state, user)

    def resolve(self, user: Optional[AuthUser]) -> None:
        """Publish the initial auth state of the session."""
        if user is None:
            self._publish(AuthState.UNAUTHENTICATED, None)
        else:
            self._publish(AuthState.AUTHENTICATED, user)

    def sign_in(self, email: str, password: str) -> AuthUser:
        user = self._provider.sign_in(email, password)
        logger.info("User signed in: %s", user.email or user.uid)
        self._publish(AuthState.AUTHENTICATED, user)
        return user

    def sign_out(self) -> None:
        user = self._user
        try:
            self._provider.sign_out(user)
        finally:
            self._publish(AuthState.UNAUTHENTICATED, None)
        if user is not None:
            logger.info("User signed out: %s", user.email or user.uid)

    def active_user(self) -> Optional[AuthUser]:
        """Current user, with the ID token refreshed when it is about to expire."""
        with self._lock:
            user = self._user
        if user is None or not user.expires_within(self._refresh_margin, self._clock()):
            return user
        return self.refresh()

    def refresh(self) -> AuthUser:
        """Renew the ID token of the current user.

        Raises NotAuthenticatedError after signing the session out when the
        provider rejects the refresh token, and StoreError when it is unreachable.
        """
        with self._lock:
            user = self._user
            if user is None:
                raise NotAuthenticatedError()
            try:
                fresh = self._provider.refresh(user)
            except AuthError as exc:
                if exc.code == "auth/network-request-failed":
                    raise StoreError("Unable to refresh the session token") from exc
                logger.warning("Session token refresh rejected for %s: %s", user.email or user.uid, exc.code)
                rejected = exc
            else:
                if self._user is user:
                    self._user = fresh
                return fresh
        self._publish(AuthState.UNAUTHENTICATED, None)
        raise NotAuthenticatedError() from rejected
