"""Error types for goodturkey.

Every error raised on purpose by this package derives from GoodTurkeyError,
so the CLI can report them uniformly and exit non-zero.
"""


class GoodTurkeyError(Exception):
    """Base class for goodturkey errors."""


class ConfigError(GoodTurkeyError):
    """Configuration value is present but unusable."""


class ValidationError(GoodTurkeyError):
    """Input was rejected before any state change."""


class NotFound(GoodTurkeyError):
    """Record is missing or belongs to another owner."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class ConcurrentModification(GoodTurkeyError):
    """Conditional write found the record changed since it was read."""

    def __init__(self, restriction_id: str) -> None:
        super().__init__(f"Blocked site {restriction_id} was modified concurrently; reload and retry")
        self.restriction_id = restriction_id


class LifecycleError(GoodTurkeyError):
    """A gated transition (deactivate/delete) was refused."""


class UnlockNotRequested(LifecycleError):
    """No cooldown is in progress for the restriction."""

    def __init__(self, restriction_id: str | None = None) -> None:
        super().__init__("Unlock not requested: request unlock first and wait for the delay to pass")
        self.restriction_id = restriction_id


class UnlockNotReady(LifecycleError):
    """Cooldown in progress but not finished."""

    def __init__(self, remaining_ms: int, restriction_id: str | None = None) -> None:
        super().__init__(f"Unlock not ready: {remaining_ms} ms remaining")
        self.remaining_ms = remaining_ms
        self.restriction_id = restriction_id


class SyncError(GoodTurkeyError):
    """Fetching the rule projection failed."""


class SyncAuthError(SyncError):
    """Sync endpoint rejected the token (HTTP 401)."""
