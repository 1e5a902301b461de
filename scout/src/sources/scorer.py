"""
Source scoring.

Pure functions that rate a search hit for a project. No I/O: the same hit
and project always produce the same score.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from ..store.models import RecommendationTier, ResearchProject
from .provider import SearchHit

HIGH_PRIORITY_THRESHOLD = 0.85
MEDIUM_PRIORITY_THRESHOLD = 0.6

# Host suffix -> site label, first match wins
SITE_LABELS = [
    ("plato.stanford.edu", "Stanford Encyclopedia"),
    ("stanford.edu", "Stanford Encyclopedia"),
    ("iep.utm.edu", "Internet Encyclopedia of Philosophy"),
    ("philpapers.org", "PhilPapers"),
    ("arxiv.org", "ArXiv"),
    ("gutenberg.org", "Project Gutenberg"),
    ("marxists.org", "Marxists.org"),
    ("monoskop.org", "Monoskop"),
    ("archive.org", "Internet Archive"),
]

SITE_QUALITY = {
    "Stanford Encyclopedia": 0.9,
    "Internet Encyclopedia of Philosophy": 0.8,
    "PhilPapers": 0.8,
    "ArXiv": 0.7,
    "Project Gutenberg": 0.85,
    "Marxists.org": 0.75,
    "Monoskop": 0.7,
    "Internet Archive": 0.75,
}
DEFAULT_SITE_QUALITY = 0.65

SITE_CREDIBILITY = {
    "Stanford Encyclopedia": 0.95,
    "Internet Encyclopedia of Philosophy": 0.85,
    "PhilPapers": 0.85,
    "ArXiv": 0.75,
    "Project Gutenberg": 0.9,
    "Internet Archive": 0.8,
}
DEFAULT_SITE_CREDIBILITY = 0.7

ACADEMIC_PATTERNS = [r'\.edu$', r'\.ac\.[a-z]{2}$', r'\.edu\.[a-z]{2}$', r'\.gov$']
ACADEMIC_BOOST = 0.1

SENSATIONALIST_MARKERS = [
    "you won't believe",
    "shocking",
    "mind-blowing",
    "secret they",
    "click here",
    "top 10",
    "!!!",
]
SENSATIONALIST_PENALTY = 0.1

AUTHOR_PATTERNS = [
    re.compile(r'^\s*Author:\s*(.+)$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*Written by\s+(.+)$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*By\s+([A-Z][^\n]+)$', re.MULTILINE),
]

_WORD = re.compile(r"[a-z0-9][a-z0-9'-]*")


@dataclass(frozen=True)
class SourceScore:
    """Scores for one hit, all in [0, 1]."""
    quality_score: float
    relevance_score: float
    credibility_score: float
    recommendation_tier: RecommendationTier
    combined_score: float


def score(hit: SearchHit, project: ResearchProject) -> SourceScore:
    """
    Score a search hit against a project.

    Args:
        hit: Search result to rate
        project: Project the hit was found for

    Returns:
        SourceScore with tier derived from the combined score
    """
    site = source_site_for(hit.url)
    relevance = relevance_score(hit, project)
    quality = quality_score(hit.snippet, site)
    credibility = credibility_score(hit, site)

    combined = _clamp(0.4 * relevance + 0.35 * quality + 0.25 * credibility)

    return SourceScore(
        quality_score=round(quality, 4),
        relevance_score=round(relevance, 4),
        credibility_score=round(credibility, 4),
        recommendation_tier=tier_for(combined),
        combined_score=round(combined, 4),
    )


def tier_for(combined: float) -> RecommendationTier:
    """Map a combined score to a recommendation tier."""
    if combined >= HIGH_PRIORITY_THRESHOLD:
        return RecommendationTier.HIGH
    if combined >= MEDIUM_PRIORITY_THRESHOLD:
        return RecommendationTier.MEDIUM
    return RecommendationTier.LOW


def relevance_score(hit: SearchHit, project: ResearchProject) -> float:
    """Share of project keywords found in the hit's title and snippet."""
    keywords = project_keywords(project)
    if not keywords:
        return 0.0

    words = set(_words(f"{hit.title} {hit.snippet}"))
    overlap = sum(1 for k in keywords if k in words)
    return _clamp(overlap / len(keywords))


def quality_score(preview: str, site: str) -> float:
    """Site reputation plus how much substantive text the preview carries."""
    site_quality = SITE_QUALITY.get(site, DEFAULT_SITE_QUALITY)
    length_part = min(len(preview) / 500, 1.0)
    substantive = sum(1 for w in _words(preview) if len(w) > 3)
    substance_part = min(substantive / 60, 1.0)
    return _clamp(0.5 * site_quality + 0.25 * length_part + 0.25 * substance_part)


def credibility_score(hit: SearchHit, site: str) -> float:
    """Site credibility adjusted for academic domains and sensationalism."""
    credibility = SITE_CREDIBILITY.get(site, DEFAULT_SITE_CREDIBILITY)

    domain = hit.domain or urlparse(hit.url).netloc.lower()
    if any(re.search(p, domain) for p in ACADEMIC_PATTERNS):
        credibility += ACADEMIC_BOOST

    text = f"{hit.title} {hit.snippet}".lower()
    markers = sum(1 for m in SENSATIONALIST_MARKERS if m in text)
    credibility -= SENSATIONALIST_PENALTY * markers

    return _clamp(credibility)


def project_keywords(project: ResearchProject) -> set[str]:
    """Words longer than three characters from the project title and terms."""
    text = " ".join([project.title, *project.search_terms])
    return {w for w in _words(text) if len(w) > 3}


def source_site_for(url: str) -> str:
    """Human-readable site label for a URL."""
    host = urlparse(url).netloc.lower()
    for suffix, label in SITE_LABELS:
        if host == suffix or host.endswith("." + suffix):
            return label
    return "Web"


def extract_author(text: str) -> Optional[str]:
    """Find an author line ("Author:", "Written by", "By") in text."""
    if not text:
        return None
    for pattern in AUTHOR_PATTERNS:
        match = pattern.search(text)
        if match:
            author = match.group(1).strip().strip("*_").strip()
            if 0 < len(author) <= 100:
                return author
    return None


def _words(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
