"""
Deletion-specific errors.

A deletion failure never blocks the rest of its batch: the affected
record is marked error and excluded.
"""


class DeletionError(Exception):
    """Base exception for staged deletion failures."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}" if path else reason)


class DeleteRequestError(DeletionError):
    """
    Token issuance failed.

    Typical causes: empty path, file already removed out-of-band.
    """

    pass


class DeleteCommitError(DeletionError):
    """Committing a staged deletion failed (unknown token or OS error)."""

    pass
