"""Domain errors raised by the run metrics engine."""


class RunMetricsError(Exception):
    """Base class for engine errors."""


class QuotaExceededError(RunMetricsError):
    """The underlying store refused a write because it would exceed its quota."""

    def __init__(self, key: str, projected_bytes: int, quota_bytes: int):
        super().__init__(
            f"Writing '{key}' needs {projected_bytes} bytes; quota is {quota_bytes} bytes"
        )
        self.key = key
        self.projected_bytes = projected_bytes
        self.quota_bytes = quota_bytes


class StorageExhausted(RunMetricsError):
    """Persisting failed even after degrading GPS point density.

    The in-memory state still holds the change; the caller must prune data
    (delete runs, goals or stories) before anything else can be saved.
    """


class InvalidStreamData(RunMetricsError):
    def __init__(self, issues: list[str]):
        super().__init__("Invalid stream data: " + "; ".join(issues))
        self.issues = list(issues)


class RemoteFetchError(RunMetricsError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(RemoteFetchError):
    def __init__(self, message: str, *, retry_after_s: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after_s = retry_after_s


class RunNotFound(RunMetricsError, LookupError):
    pass


class GoalNotFound(RunMetricsError, LookupError):
    pass


class StoryNotFound(RunMetricsError, LookupError):
    pass


class InvalidBackup(RunMetricsError):
    """An uploaded backup document could not be read."""
