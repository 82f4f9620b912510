"""
VendHub Errors
==============

Exception hierarchy for the state layer.

Expected runtime conditions (an unavailable product, an unknown cart line, a
points request above the allowed ceiling) are never raised across the public
API; they are reported through return values such as ``AddItemResult``.
The classes below cover persistence problems, which are raised internally and
caught and logged at the store boundary, and checkout misuse, which is a
programming error.
"""

from typing import Optional


class VendHubError(Exception):
    """Base class for all VendHub state errors."""

    pass


class PersistenceError(VendHubError):
    """Base class for durable storage problems."""

    def __init__(self, key: str, reason: str, cause: Optional[BaseException] = None):
        self.key = key
        self.reason = reason
        self.cause = cause
        super().__init__(f"{key}: {reason}")


class PersistenceReadFailed(PersistenceError):
    """The persisted payload could not be read or decoded."""

    pass


class PersistenceWriteFailed(PersistenceError):
    """The state could not be serialized or written to the slot."""

    pass


class VersionMismatch(PersistenceError):
    """The persisted payload has a different version and no migration applies."""

    def __init__(self, key: str, stored_version: int, expected_version: int):
        self.stored_version = stored_version
        self.expected_version = expected_version
        super().__init__(
            key,
            f"stored version {stored_version} does not match {expected_version}",
        )


class CheckoutError(VendHubError):
    """A checkout draft was requested for a cart that cannot be submitted."""

    pass
