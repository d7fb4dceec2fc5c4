"""
Transfer-specific errors.

A TransferError isolates a single file's transfer loop: other
transfers in the same batch keep going.
"""


class TransferError(Exception):
    """Chunk upload failed for one file."""

    def __init__(self, file_name: str, reason: str, offset: int = 0):
        self.file_name = file_name
        self.reason = reason
        self.offset = offset
        super().__init__(f"Transfer of {file_name} failed at offset {offset}: {reason}")
