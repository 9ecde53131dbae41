"""
Stream ingestion for orders.
"""

from .pipeline import IngestionPipeline, MessageOutcome

__all__ = ["IngestionPipeline", "MessageOutcome"]
