"""Error hierarchy for the assignment sync pipeline.

The transient/permanent split lets tenacity retry decorators tell failures
that may succeed on retry apart from ones that never will.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    def fetch(url: str):
        ...
"""


class SyncError(Exception):
    """Base exception for all sync errors."""

    pass


class TransientError(SyncError):
    """Temporary failure that may succeed on retry.

    Examples: connection resets, timeouts, 503 Service Unavailable.
    """

    pass


class RateLimitError(TransientError):
    """Rate limit exceeded - needs longer backoff.

    Inherits from TransientError so tenacity will retry it.
    """

    pass


class PermanentError(SyncError):
    """Failure that won't succeed on retry."""

    pass


class AuthenticationError(PermanentError):
    """Bad credentials or SSO rejection.

    Fatal to the portal scan, cannot be fixed by retry.
    """

    pass


class TransportError(PermanentError):
    """The HTTP exchange broke in a way a retry won't fix.

    Examples: truncated chunked body, undecodable content, malformed URL.
    """

    pass


class RedirectError(PermanentError):
    """The login redirect chase did not reach a recognized end state."""

    pass


class RedirectLoop(RedirectError):
    """More redirects than the configured maximum."""

    pass


class RedirectUnresolved(RedirectError):
    """A response carried no recognizable next step."""

    pass


class ConfigMissing(PermanentError):
    """A required setting is absent. Raised before any network call."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Required setting {key!r} is not configured")
        self.key = key


class SinkListInvalid(PermanentError):
    """The configured task list no longer exists on the sink."""

    pass


class ParseSkip(SyncError):
    """A single course page or assignment card could not be parsed."""

    pass


class SinkError(SyncError):
    """Base exception for task sink failures."""

    pass


class SinkNotFound(SinkError):
    """The remote task (or list) does not exist. Drives the DELETED transition."""

    pass


class SinkAPIError(SinkError):
    """Any other sink failure. The record's transition is deferred to the next run."""

    pass
