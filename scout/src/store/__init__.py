"""
Storage modules for scout data.
"""

from .base import ResearchStore
from .database import LibraryDatabase
from .sources import DiscoveredSourceStore
from .models import (
    ResearchProject, DiscoveredSource, LibraryText, RunRecord,
    RecommendationTier, SourceStatus, SourceState,
    Pending, Ingested, Failed, Insufficient,
)

__all__ = [
    "ResearchStore",
    "LibraryDatabase",
    "DiscoveredSourceStore",
    "ResearchProject",
    "DiscoveredSource",
    "LibraryText",
    "RunRecord",
    "RecommendationTier",
    "SourceStatus",
    "SourceState",
    "Pending",
    "Ingested",
    "Failed",
    "Insufficient",
]
