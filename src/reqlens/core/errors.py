"""Exception hierarchy for the request pipeline."""


class ReqlensError(Exception):
    """Base class for all reqlens errors."""


class BackingStoreUnavailable(ReqlensError):
    """The backing store did not answer within the readiness budget."""


class QueryError(ReqlensError):
    """A query (cost estimation or real execution) failed.

    Attributes:
        text: The SQL text that failed.
    """

    def __init__(self, message: str, text: str = "") -> None:
        super().__init__(message)
        self.text = text


class ValidationError(ReqlensError):
    """A required request parameter is missing or malformed."""


class SyntheticFailure(ReqlensError):
    """Deliberately injected failure used to exercise error logging."""


class ComputeError(ReqlensError):
    """Deliberate failure raised after CPU-bound work."""
