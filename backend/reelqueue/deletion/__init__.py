"""Deferred (two-phase) deletion of temp files and trash-task originals."""

from .errors import DeletionError, DeleteRequestError, DeleteCommitError
from .protocol import (
    DeleteTarget,
    DeleteTicket,
    DeleteFailure,
    PendingDeletion,
    DeleteReport,
    DeleteProtocol,
)
from .service import LocalDeleteService

__all__ = [
    "DeletionError",
    "DeleteRequestError",
    "DeleteCommitError",
    "DeleteTarget",
    "DeleteTicket",
    "DeleteFailure",
    "PendingDeletion",
    "DeleteReport",
    "DeleteProtocol",
    "LocalDeleteService",
]
