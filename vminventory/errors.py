class InventoryError(Exception):
    """Base class for every error that ends an invocation."""


class ParseError(InventoryError):
    """The connection URL is not usable."""


class AuthError(InventoryError):
    """Login failed or the cached session could not be resumed."""


class UsageError(InventoryError):
    """Missing or unknown subcommand, or a required flag is unset."""


class FetchError(InventoryError):
    """Creating the container view or retrieving one kind's properties failed."""

    def __init__(self, kind, cause):
        self.kind = kind
        self.cause = cause
        message = getattr(cause, "msg", None) or str(cause)
        if kind is None:
            super().__init__(f"inventory retrieval failed: {message}")
        else:
            super().__init__(f"retrieving {kind.value} failed: {message}")


class UnknownKindError(FetchError):
    """A kind outside the supported set reached the fetcher."""

    def __init__(self, kind):
        self.kind = None
        self.cause = None
        self.value = kind
        InventoryError.__init__(self, f"unknown object kind: {kind!r}")
