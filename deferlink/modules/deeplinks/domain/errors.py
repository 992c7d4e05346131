"""
Error taxonomy for deep link handling.

Only ``NotInitializedError`` is meant to reach callers. Everything else is
caught where it happens, turned into a message and reported through the
``on_error`` callback.
"""


class DeepLinkError(Exception):
    """Base class for deep link errors."""


class InvalidLinkFormat(DeepLinkError):
    pass


class NativeProviderUnavailable(DeepLinkError):
    pass


class NativeProviderTimeout(DeepLinkError):
    pass


class StorageUnavailable(DeepLinkError):
    pass


class StorageCorrupt(DeepLinkError):
    pass


class NotInitializedError(DeepLinkError, RuntimeError):
    """Raised when an instance-scoped operation is used before initialize()."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"DeepLinkService.{operation}() called before initialize(); "
            "call and await initialize() first"
        )
        self.operation = operation
