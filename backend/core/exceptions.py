"""Custom exception hierarchy for the focus timer backend."""
from typing import Optional


class FocusTimerError(Exception):
    """Base error."""
    def __init__(self, message: str, code: str = "FOCUS_TIMER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthError(FocusTimerError):
    """Authentication / authorization failures (caller is not the session owner)."""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED")


class NoActiveSessionError(FocusTimerError):
    """No open timer session matches the request. Client must re-fetch state."""
    def __init__(self, message: str = "No active timer session"):
        super().__init__(message, code="NO_ACTIVE_SESSION")


class SessionAlreadyCompletedError(FocusTimerError):
    """Session is already COMPLETED. Callers treat this as an idempotent success."""
    def __init__(self, session_id: str, elapsed_ms: Optional[int] = None):
        self.session_id = session_id
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Timer session already completed: {session_id}",
            code="SESSION_ALREADY_COMPLETED",
        )


class ActiveSessionExistsError(FocusTimerError):
    """A second open session was requested for the same user."""
    def __init__(self, message: str = "An active timer session already exists"):
        super().__init__(message, code="ACTIVE_SESSION_EXISTS")


class InvalidTimezoneError(FocusTimerError):
    def __init__(self, tz_name: str):
        super().__init__(f"Unknown timezone: {tz_name}", code="INVALID_TIMEZONE")


class StoreUnavailableError(FocusTimerError):
    """Session/Streak store I/O failure. Transient; callers retry with fresh input."""
    def __init__(self, message: str = "Store unavailable"):
        super().__init__(message, code="STORE_UNAVAILABLE")


class ConcurrentModificationError(FocusTimerError):
    """Optimistic version check failed on a conditional write."""
    def __init__(self, message: str = "Concurrent modification"):
        super().__init__(message, code="CONCURRENT_MODIFICATION")


class TransientSyncError(FocusTimerError):
    """Client agent could not reach the server (network error, timeout, 5xx). Retry later."""
    def __init__(self, message: str = "Server unreachable"):
        super().__init__(message, code="SYNC_TRANSIENT")


class SyncRejectedError(FocusTimerError):
    """Server refused the request (4xx). Retrying the same request will not help."""
    def __init__(self, message: str, code: str = "SYNC_REJECTED", status_code: int = 400):
        self.status_code = status_code
        super().__init__(message, code=code)
