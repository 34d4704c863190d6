class Unauthenticated(Exception):
    """No credential available, or the remote service rejected it (401)."""


class RemoteUnavailable(Exception):
    """Transport failure or server-side error from the remote service."""


class RateLimited(RemoteUnavailable):
    """Remote service throttled the call. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class NotFound(Exception):
    """Requested remote resource was not found."""


class InvalidInput(ValueError):
    """Request rejected before any remote call was made."""


class MutationFailed(Exception):
    """A playlist mutation chunk failed after `applied` items were committed."""

    def __init__(self, operation: str, applied: int, requested: int, cause: Exception) -> None:
        super().__init__(
            f"{operation} failed after {applied} of {requested} tracks: {cause}"
        )
        self.operation = operation
        self.applied = applied
        self.requested = requested
        self.cause = cause


class ApplyFailed(Exception):
    """Committing a reconciliation result failed; `result` holds the counts applied so far."""

    def __init__(self, result, cause: Exception) -> None:
        super().__init__(
            f"Apply stopped (added={result.added}, removed={result.removed}): {cause}"
        )
        self.result = result
        self.cause = cause
