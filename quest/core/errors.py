"""Domain errors the API maps onto HTTP status codes."""


class NotFoundError(LookupError):
    """A requested record does not exist or is not visible to the caller."""
