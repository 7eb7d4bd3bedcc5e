"""Exceptions raised by the progress engine and its storage adapters."""


class ProgressError(Exception):
    """Base class for all progress engine errors."""


class InvalidActivityError(ProgressError):
    """Raw activity payload is malformed and was rejected before any state change."""


class ProfileNotFoundError(ProgressError):
    """No profile exists for the requested user."""

    def __init__(self, user_id: str):
        super().__init__(f"Profile not found: {user_id}")
        self.user_id = user_id


class ProfileExistsError(ProgressError):
    """A profile already exists for the user being created."""

    def __init__(self, user_id: str):
        super().__init__(f"Profile already exists: {user_id}")
        self.user_id = user_id


class VersionConflictError(ProgressError):
    """Stored profile changed between load and save."""

    def __init__(self, user_id: str, expected: int, actual: int):
        super().__init__(
            f"Version conflict for {user_id}: expected {expected}, found {actual}"
        )
        self.user_id = user_id
        self.expected = expected
        self.actual = actual


class StoreError(ProgressError):
    """Underlying persistence failure."""


class BadgeCatalogError(ProgressError):
    """Badge catalog configuration is invalid."""
