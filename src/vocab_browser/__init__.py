"""
Vocabulary Browser - search and browse SKOS vocabularies over SPARQL

Features:
- Vocabulary registry loaded from a Turtle configuration file
- Label search in one, several or all vocabularies
- Concept details and breadcrumb paths to the hierarchy roots
- Generic, Jena text and Blazegraph SPARQL dialects
- CLI and JSON API
"""

from ._version import __version__
from .breadcrumbs import Breadcrumb, Breadcrumbs, build_breadcrumbs
from .models import ConceptInfo, SearchHit
from .registry import (
    Vocabulary,
    VocabularyCategory,
    VocabularyNotFoundError,
    VocabularyRegistry,
    load_registry,
)
from .search import SearchOrchestrator
from .store import BackendError

__all__ = [
    "__version__",
    "Vocabulary",
    "VocabularyCategory",
    "VocabularyRegistry",
    "VocabularyNotFoundError",
    "load_registry",
    "SearchOrchestrator",
    "SearchHit",
    "ConceptInfo",
    "Breadcrumb",
    "Breadcrumbs",
    "build_breadcrumbs",
    "BackendError",
]
