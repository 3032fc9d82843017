class RateLimitError(Exception):
    """Base class for every error raised by the limiter"""


class InvalidArgument(RateLimitError, ValueError):
    """A caller supplied a value the limiter cannot work with"""


class CorruptRecord(RateLimitError, ValueError):
    """A stored record exists but does not have the expected shape"""


class StorageFailure(RateLimitError):
    """
    The storage backend failed to read, write or delete a key.

    The original exception (if any) is chained as ``__cause__``.
    """

    def __init__(self, key: str, operation: str = "save"):
        self.key = key
        self.operation = operation
        super().__init__(f'Could not {operation} "{key}" in storage provider.')
