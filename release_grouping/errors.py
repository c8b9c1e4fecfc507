"""
Exceptions raised by the grouping pipeline.

Auth and transient fetch errors come out of the Storefront client; the
renderer and engine raise the other two.
"""


class GroupingError(Exception):
    """Base class for every error raised by the pipeline."""
    pass


class AuthError(GroupingError):
    """Storefront access token missing or rejected. Never retried."""
    pass


class TransientFetchError(GroupingError):
    """Network/HTTP failure while fetching a catalog page."""
    pass


class CatalogResponseError(TransientFetchError):
    """The GraphQL endpoint answered with an `errors` payload."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


class RenderItemError(GroupingError):
    """A single card could not be built."""
    pass


class GroupInvariantViolation(GroupingError):
    """Internal bookkeeping went wrong (e.g. records processed but nothing emitted)."""
    pass
