"""
Services module — application-level services over the job registry.
"""

from .ingestion import IngestionService, IngestionError

__all__ = ["IngestionService", "IngestionError"]
