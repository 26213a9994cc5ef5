"""
Raw Source Ingestion Module
"""
from .batch_loader import BatchLoader, LoadResult, LoadStatus

__all__ = [
    "BatchLoader",
    "LoadResult",
    "LoadStatus",
]
