class StoreUnavailableError(Exception):
    """Raised when a shared backing store (Redis or similar) cannot be reached.

    Distinct from admission outcomes: callers decide whether to fail open or closed.
    """

    def __init__(self, store: str, operation: str, cause: Exception | None = None):
        self.store = store
        self.operation = operation
        self.cause = cause
        message = f"{store} unavailable during {operation}"
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)


class ProfileNotFoundError(Exception):
    """Raised by profile stores when a user has no profile."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Profile not found for user {user_id}")
