"""
Scout - discovers reference documents for research projects and adds them
to the text library.

For each project, scout searches a content provider with the project's
search terms, scores the hits, records them, and fetches and ingests the
most promising ones, never ingesting the same source twice.
"""

from .orchestrator import Orchestrator
from .api import ScoutAPI
from .models import RunSummary, SourceFailure

__all__ = [
    "Orchestrator",
    "ScoutAPI",
    "RunSummary",
    "SourceFailure",
]
