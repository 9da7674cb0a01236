"""
Error taxonomy for cart guardrails.

Every error surfaced across the package boundary carries a stable ``code``
and a ``recoverable`` flag so a higher layer can decide between retrying
and aborting.
"""

from dataclasses import dataclass
from typing import Any, List, Optional


SELECTOR_ERROR = "SELECTOR_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
TIMEOUT_ERROR = "TIMEOUT_ERROR"
AUTH_ERROR = "AUTH_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"


# ─────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────

class CartGuardError(Exception):
    """Base class for all errors raised by this package."""

    code = UNKNOWN_ERROR
    recoverable = False

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class SelectorError(CartGuardError):
    """The page markup did not contain what a selector entry describes."""

    code = SELECTOR_ERROR

    def __init__(self, message: str, selector: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.selector = selector


class InvalidSelectorError(SelectorError):
    """The document rejected a selector expression as malformed."""


class ResolutionError(SelectorError):
    """
    No strategy in an entry's chain produced a unique match.

    ``attempted`` lists every strategy tried, in order. ``ambiguous``,
    ``timed_out`` and ``invalid`` are the subsets skipped for matching
    several elements, for exceeding the per-strategy wait, or for being
    rejected by the document as malformed.
    """

    def __init__(self, message: str, attempted: List[Any],
                 ambiguous: Optional[List[Any]] = None,
                 timed_out: Optional[List[Any]] = None,
                 selector: Optional[str] = None,
                 invalid: Optional[List[Any]] = None):
        super().__init__(message, selector=selector)
        self.attempted = list(attempted)
        self.ambiguous = list(ambiguous or [])
        self.timed_out = list(timed_out or [])
        self.invalid = list(invalid or [])


class ValidationError(CartGuardError):
    """The document or a definition is not in the shape the caller expected."""

    code = VALIDATION_ERROR

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.field = field
        self.value = value


class NetworkError(CartGuardError):
    """Connection-level failure while fetching a page source."""

    code = NETWORK_ERROR
    recoverable = True

    def __init__(self, message: str, status: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.status = status


class FetchTimeoutError(CartGuardError):
    """A page source did not arrive within its time budget."""

    code = TIMEOUT_ERROR
    recoverable = True

    def __init__(self, message: str, timeout: Optional[float] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.timeout = timeout


class AuthError(CartGuardError):
    """The session is not authenticated for the requested page."""

    code = AUTH_ERROR


class RegistryError(CartGuardError):
    """Selector registry misconfiguration. Always fatal to the caller."""

    code = VALIDATION_ERROR


class NotFoundError(RegistryError, LookupError):
    pass


class ConflictError(RegistryError):
    pass


# ─────────────────────────────────────────────────────────────
# Categorization
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ErrorCategory:
    code: str
    recoverable: bool
    message: str


_MESSAGE_HINTS = (
    (NETWORK_ERROR, True, ("network", "net::", "econnrefused", "enotfound",
                           "connection refused", "fetch failed")),
    (TIMEOUT_ERROR, True, ("timeout", "timed out")),
    (SELECTOR_ERROR, False, ("selector", "element", "locator", "waiting for")),
    (AUTH_ERROR, False, ("auth", "login", "unauthorized", "forbidden")),
    (VALIDATION_ERROR, False, ("invalid", "required", "must be", "expected")),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """
    Map any exception onto the boundary error codes.

    Package errors keep their own code. Builtin timeouts and connection
    errors map by type; anything else is matched on its message and falls
    back to UNKNOWN_ERROR.
    """
    if isinstance(exc, CartGuardError):
        return ErrorCategory(exc.code, exc.recoverable, exc.message)

    message = str(exc) or type(exc).__name__
    if isinstance(exc, TimeoutError):
        return ErrorCategory(TIMEOUT_ERROR, True, message)
    if isinstance(exc, ConnectionError):
        return ErrorCategory(NETWORK_ERROR, True, message)

    lowered = f"{type(exc).__name__} {message}".lower()
    for code, recoverable, hints in _MESSAGE_HINTS:
        if any(h in lowered for h in hints):
            return ErrorCategory(code, recoverable, message)

    return ErrorCategory(UNKNOWN_ERROR, False, message)


def is_recoverable(exc: BaseException) -> bool:
    return categorize_error(exc).recoverable
