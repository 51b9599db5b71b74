from __future__ import annotations


class BibleCloudError(RuntimeError):
    """Base class for errors raised by the tracker."""


class StoreError(BibleCloudError):
    """Raised when the document store cannot complete a request."""


class StoreAuthorizationError(StoreError):
    """Raised when the document store rejects the ID token of the user."""


class NotAuthenticatedError(BibleCloudError):
    """Raised when an action needs a signed-in user and there is none."""

    def __init__(self, message: str = "Inicia sesión para continuar.") -> None:
        super().__init__(message)


class CatalogError(BibleCloudError):
    """Raised when the chapter catalog cannot be loaded or parsed."""


class ConfirmationError(BibleCloudError):
    """Raised on an invalid transition of the unread confirmation."""


class AuthError(BibleCloudError):
    """Raised when sign-in or sign-out fails.

    ``code`` follows the ``auth/<reason>`` convention of the auth provider and
    ``message`` is the text shown to the user.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
