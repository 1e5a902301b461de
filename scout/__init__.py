"""
Scout Module

Discovers reference documents for research projects and ingests them into
the text library.
"""

__version__ = "0.1.0"

from .src import Orchestrator, ScoutAPI

__all__ = ["Orchestrator", "ScoutAPI"]
