"""
Vocabulary registry: configured vocabularies and the lookups over them.

The registry is loaded from a Turtle file describing each vocabulary:

    @prefix onki: <http://schema.onki.fi/onki#> .
    @prefix void: <http://rdfs.org/ns/void#> .
    @prefix dc: <http://purl.org/dc/terms/> .

    :yso a onki:Vocabulary ;
        dc:title "YSO - General Finnish ontology"@en ;
        dc:subject :cat_general ;
        void:uriSpace "http://www.yso.fi/onto/yso/" ;
        void:sparqlEndpoint <http://api.finto.fi/sparql> ;
        onki:sparqlGraph <http://www.yso.fi/onto/yso/> ;
        onki:sparqlDialect "JenaText" ;
        onki:defaultLanguage "fi" ;
        onki:language "fi", "sv", "en" ;
        onki:arrayClass isothes:ThesaurusArray .

    :cat_general a skos:Concept ; skos:prefLabel "Yleiset"@fi, "General"@en .

The vocabulary id is the local name of the resource ("yso"). Indexes by graph
and by URI space are built lazily and are read-only afterwards.
"""
from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import sparql
from .cache import ConfigCache, NullCache, fingerprint
from .store import HttpSparqlEndpoint, OxigraphStore

logger = logging.getLogger(__name__)

ONKI = "http://schema.onki.fi/onki#"
VOID = "http://rdfs.org/ns/void#"
DC_TERMS = "http://purl.org/dc/terms/"
DC_ELEMENTS = "http://purl.org/dc/elements/1.1/"

DEFAULT_ENDPOINT = "http://localhost:3030/ds/sparql"
DEFAULT_DIALECT = "generic"
UNCATEGORIZED = "Other"

BASE_PREFIXES = {
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "rdfs": "http://www.w3.org/2000/01/rdf-schema#",
    "owl": "http://www.w3.org/2002/07/owl#",
    "skos": "http://www.w3.org/2004/02/skos/core#",
    "dc": DC_TERMS,
    "onki": ONKI,
    "void": VOID,
    "skosext": "http://purl.org/finnonto/schema/skosext#",
    "isothes": "http://purl.org/iso25964/skos-thes#",
}

_LOCAL_NAME_RE = re.compile(r"([^#:/]+)$")
_CURIE_LOCAL_RE = re.compile(r"^[\w\-.]*$")


class VocabularyNotFoundError(LookupError):
    """No configured vocabulary matches the requested id, graph or URI."""


def local_name(uri: str) -> str:
    """Return the trailing name of a URI after the last '#', '/' or ':'."""
    if "#" in uri:
        return uri.rsplit("#", 1)[1]
    match = _LOCAL_NAME_RE.search(uri)
    return match.group(1) if match else ""


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Vocabulary:
    """A configured vocabulary and where its data lives."""

    id: str
    uri_space: str
    graph: str | None = None
    endpoint: str = DEFAULT_ENDPOINT
    title: str = ""
    default_language: str | None = None
    languages: tuple[str, ...] = ()
    dialect: str = DEFAULT_DIALECT
    array_class: str | None = None  # container nodes excluded from search hits
    show_lang_codes: bool = False
    full_alphabetical_index: bool = False
    categories: tuple[str, ...] = ()  # category URIs (dc:subject)

    def local_name(self, uri: str) -> str:
        """Strip the URI space from a concept URI. Returns uri unchanged if outside it."""
        if self.uri_space and uri.startswith(self.uri_space):
            return uri[len(self.uri_space):]
        return uri

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "uriSpace": self.uri_space,
            "graph": self.graph,
            "endpoint": self.endpoint,
            "title": self.title,
            "defaultLanguage": self.default_language,
            "languages": list(self.languages),
            "dialect": self.dialect,
            "arrayClass": self.array_class,
            "showLangCodes": self.show_lang_codes,
            "fullAlphabeticalIndex": self.full_alphabetical_index,
            "categories": list(self.categories),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Vocabulary:
        return cls(
            id=data["id"],
            uri_space=data["uriSpace"],
            graph=data.get("graph"),
            endpoint=data.get("endpoint") or DEFAULT_ENDPOINT,
            title=data.get("title", ""),
            default_language=data.get("defaultLanguage"),
            languages=tuple(data.get("languages", [])),
            dialect=data.get("dialect", DEFAULT_DIALECT),
            array_class=data.get("arrayClass"),
            show_lang_codes=data.get("showLangCodes", False),
            full_alphabetical_index=data.get("fullAlphabeticalIndex", False),
            categories=tuple(data.get("categories", [])),
        )


@dataclass
class VocabularyCategory:
    """A grouping of vocabularies (e.g. "Health") for the vocabulary list."""

    uri: str
    labels: dict[str, str] = field(default_factory=dict)  # lang -> label

    def get_title(self, lang: str | None = None) -> str:
        if lang and lang in self.labels:
            return self.labels[lang]
        return next(iter(self.labels.values()), local_name(self.uri))

    def to_dict(self) -> dict[str, Any]:
        return {"uri": self.uri, "labels": self.labels}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VocabularyCategory:
        return cls(uri=data["uri"], labels=data.get("labels", {}))


class VocabularyRegistry:
    """Lookup of configured vocabularies and their SPARQL backends."""

    def __init__(
        self,
        vocabularies: Iterable[Vocabulary],
        categories: Iterable[VocabularyCategory] = (),
        default_endpoint: str = DEFAULT_ENDPOINT,
        default_dialect: str = DEFAULT_DIALECT,
        transport: Callable[[str], Any] | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the registry.

        Args:
            vocabularies: Vocabularies in lookup order.
            categories: Vocabulary categories for the grouped vocabulary list.
            default_endpoint: Endpoint used for multi-vocabulary and global search.
            default_dialect: Dialect tag of the default backend.
            transport: Callable mapping an endpoint URL to an object with
                       ``query(sparql) -> bindings``. Default: HttpSparqlEndpoint.
            timeout: Request timeout for the default HTTP transport.

        Raises:
            ValueError: On duplicate vocabulary ids or unknown dialect tags.
        """
        self._vocabularies: dict[str, Vocabulary] = {}
        for voc in vocabularies:
            if voc.id in self._vocabularies:
                raise ValueError(f"Duplicate vocabulary id '{voc.id}' in configuration")
            sparql.resolve_dialect(voc.dialect)
            self._vocabularies[voc.id] = voc
        self._categories = list(categories)
        self.default_endpoint = default_endpoint
        self.default_dialect = sparql.resolve_dialect(default_dialect)
        self.timeout = timeout
        self._transport = transport or (lambda url: HttpSparqlEndpoint(url, timeout=self.timeout))

        self._lock = threading.Lock()
        self._by_graph: dict[tuple[str | None, str], Vocabulary] | None = None
        self._by_urispace: dict[str, Vocabulary] | None = None
        self._backends: dict[tuple[str, str, str | None], sparql.GenericSparql] = {}
        self.prefixes = self._build_prefixes()

    def __len__(self) -> int:
        return len(self._vocabularies)

    def __iter__(self):
        return iter(self._vocabularies.values())

    def _build_prefixes(self) -> dict[str, str]:
        """Namespace prefixes: the built-ins plus one per vocabulary id."""
        prefixes = dict(BASE_PREFIXES)
        for voc in self._vocabularies.values():
            prefix = re.sub(r"\W+", "", voc.id)
            # not valid as a prefix, or already taken
            if not prefix or not prefix[0].isalpha() or prefix in prefixes:
                continue
            prefixes[prefix] = voc.uri_space
        return prefixes

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_vocabularies(self) -> list[Vocabulary]:
        return list(self._vocabularies.values())

    def get_vocabulary(self, vocid: str) -> Vocabulary:
        """Return the vocabulary with the given id.

        Raises:
            VocabularyNotFoundError: If the id is not configured.
        """
        try:
            return self._vocabularies[vocid]
        except KeyError:
            raise VocabularyNotFoundError(
                f"Vocabulary id '{vocid}' not found in configuration."
            ) from None

    def get_vocabulary_by_graph(self, graph: str | None, endpoint: str | None = None) -> Vocabulary:
        """Return the vocabulary stored in the given graph on the given endpoint.

        Raises:
            VocabularyNotFoundError: If no vocabulary uses that graph and endpoint.
        """
        endpoint = endpoint or self.default_endpoint
        if self._by_graph is None:
            with self._lock:
                if self._by_graph is None:
                    self._by_graph = {
                        (voc.graph, voc.endpoint): voc for voc in self._vocabularies.values()
                    }
        try:
            return self._by_graph[(graph, endpoint)]
        except KeyError:
            raise VocabularyNotFoundError(
                f"no vocabulary found for graph {graph} and endpoint {endpoint}"
            ) from None

    def guess_vocabulary_from_uri(self, uri: str) -> Vocabulary | None:
        """Guess which vocabulary a URI belongs to from the declared URI spaces.

        The namespace left after stripping the local name is looked up first;
        otherwise the first URI space (in registry order) that prefixes the URI
        wins. Returns None if no URI space matches.
        """
        if self._by_urispace is None:
            with self._lock:
                if self._by_urispace is None:
                    index: dict[str, Vocabulary] = {}
                    for voc in self._vocabularies.values():
                        index.setdefault(voc.uri_space, voc)
                    self._by_urispace = index

        name = local_name(uri)
        namespace = uri[: len(uri) - len(name)] if name else uri
        if namespace in self._by_urispace:
            return self._by_urispace[namespace]

        for uri_space, voc in self._by_urispace.items():
            if uri_space and uri.startswith(uri_space):
                return voc
        return None

    def vocabulary_categories(self) -> list[VocabularyCategory]:
        return list(self._categories)

    def vocabulary_list(self, categories: bool = True, lang: str | None = None):
        """List vocabularies, grouped by category title or flat.

        Args:
            categories: If True, return {category title: [Vocabulary, ...]};
                        vocabularies without a category go under "Other".
            lang: Language for category titles.
        """
        if not categories:
            return self.get_vocabularies()

        grouped: dict[str, list[Vocabulary]] = {}
        for cat in self._categories:
            vocs = [v for v in self._vocabularies.values() if cat.uri in v.categories]
            if vocs:
                grouped.setdefault(cat.get_title(lang), []).extend(vocs)
        known = {cat.uri for cat in self._categories}
        orphans = [v for v in self._vocabularies.values() if not known.intersection(v.categories)]
        if orphans:
            grouped.setdefault(UNCATEGORIZED, []).extend(orphans)
        return grouped

    # -------------------------------------------------------------------------
    # Namespaces
    # -------------------------------------------------------------------------

    def shorten_uri(self, uri: str) -> str:
        """Return "prefix:localname" for URIs inside a known namespace."""
        best = None
        for prefix, namespace in self.prefixes.items():
            if namespace and uri.startswith(namespace):
                if best is None or len(namespace) > len(self.prefixes[best]):
                    best = prefix
        if best is None:
            return uri
        local = uri[len(self.prefixes[best]):]
        if not _CURIE_LOCAL_RE.match(local):
            return uri
        return f"{best}:{local}"

    def expand_curie(self, value: str) -> str:
        """Expand "prefix:local" to a full URI. Unknown prefixes are returned unchanged."""
        return sparql.expand_curie(value, self.prefixes)

    # -------------------------------------------------------------------------
    # Backends
    # -------------------------------------------------------------------------

    def _backend(self, dialect: str, endpoint: str, graph: str | None) -> sparql.GenericSparql:
        key = (sparql.resolve_dialect(dialect), endpoint, graph)
        with self._lock:
            backend = self._backends.get(key)
            if backend is None:
                backend = sparql.create_backend(
                    key[0], self._transport(endpoint), graph=graph, prefixes=self.prefixes
                )
                self._backends[key] = backend
        return backend

    def get_sparql(self, voc: Vocabulary) -> sparql.GenericSparql:
        """Return the backend for a single vocabulary."""
        return self._backend(voc.dialect, voc.endpoint, voc.graph)

    def get_default_sparql(self) -> sparql.GenericSparql:
        """Return the backend used for multi-vocabulary and global search."""
        return self._backend(self.default_dialect, self.default_endpoint, None)


# =============================================================================
# LOADING
# =============================================================================

_VOCABULARY_QUERY = f"""
SELECT ?voc ?p ?o WHERE {{
    ?voc a <{ONKI}Vocabulary> ;
         ?p ?o .
}}
"""

_CATEGORY_QUERY = """
PREFIX skos: <http://www.w3.org/2004/02/skos/core#>
SELECT ?cat ?label WHERE {
    ?cat a skos:Concept .
    OPTIONAL { ?cat skos:prefLabel ?label }
}
"""


def _pick_title(titles: list[tuple[str, str]], lang: str | None) -> str:
    for title, title_lang in titles:
        if title_lang == lang:
            return title
    return titles[0][0] if titles else ""


def _vocabulary_from_properties(
    uri: str, props: dict[str, list[tuple[str, str]]], default_endpoint: str
) -> Vocabulary:
    """Build a Vocabulary from its (predicate -> [(value, lang)]) properties."""

    def first(*predicates: str) -> str | None:
        for predicate in predicates:
            if props.get(predicate):
                return props[predicate][0][0]
        return None

    def every(predicate: str) -> list[str]:
        return [value for value, _ in props.get(predicate, [])]

    vocid = local_name(uri)
    uri_space = first(VOID + "uriSpace")
    if not uri_space:
        raise ValueError(f"Vocabulary '{vocid}' has no void:uriSpace")

    default_language = first(ONKI + "defaultLanguage")
    titles = props.get(DC_TERMS + "title") or props.get(DC_ELEMENTS + "title") or []
    return Vocabulary(
        id=vocid,
        uri_space=uri_space,
        graph=first(ONKI + "sparqlGraph"),
        endpoint=first(VOID + "sparqlEndpoint") or default_endpoint,
        title=_pick_title(titles, default_language),
        default_language=default_language,
        languages=tuple(sorted(every(ONKI + "language"))),
        dialect=sparql.resolve_dialect(first(ONKI + "sparqlDialect") or DEFAULT_DIALECT),
        array_class=first(ONKI + "arrayClass"),
        show_lang_codes=_as_bool(first(ONKI + "explicitLanguageTags") or False),
        full_alphabetical_index=_as_bool(first(ONKI + "fullAlphabeticalIndex") or False),
        categories=tuple(sorted(every(DC_TERMS + "subject") + every(DC_ELEMENTS + "subject"))),
    )


def parse_vocabularies_file(path: Path, default_endpoint: str = DEFAULT_ENDPOINT) -> dict[str, Any]:
    """Parse a vocabulary configuration file into serialisable records.

    Returns:
        {"vocabularies": [...], "categories": [...]} with vocabularies sorted by id.
    """
    store = OxigraphStore()
    store.load(path)

    props_by_voc: dict[str, dict[str, list[tuple[str, str]]]] = {}
    for row in store.query(_VOCABULARY_QUERY):
        voc_props = props_by_voc.setdefault(row["voc"]["value"], {})
        obj = row["o"]
        voc_props.setdefault(row["p"]["value"], []).append((obj["value"], obj.get("xml:lang", "")))

    vocabularies = [
        _vocabulary_from_properties(uri, props, default_endpoint)
        for uri, props in props_by_voc.items()
    ]
    vocabularies.sort(key=lambda v: v.id)

    labels_by_cat: dict[str, dict[str, str]] = {}
    for row in store.query(_CATEGORY_QUERY):
        labels = labels_by_cat.setdefault(row["cat"]["value"], {})
        if "label" in row:
            labels[row["label"].get("xml:lang", "")] = row["label"]["value"]
    categories = [VocabularyCategory(uri, labels) for uri, labels in sorted(labels_by_cat.items())]

    logger.info("Parsed %d vocabularies and %d categories from %s",
                len(vocabularies), len(categories), path)
    return {
        "vocabularies": [v.to_dict() for v in vocabularies],
        "categories": [c.to_dict() for c in categories],
    }


def load_registry(
    path: Path | str,
    cache: ConfigCache | None = None,
    default_endpoint: str = DEFAULT_ENDPOINT,
    default_dialect: str = DEFAULT_DIALECT,
    transport: Callable[[str], Any] | None = None,
    timeout: float = 30.0,
) -> VocabularyRegistry:
    """Load the vocabulary registry from a configuration file.

    The parsed configuration is cached under the SHA-256 fingerprint of the file
    content and the default endpoint. Parsed records carry the default endpoint
    for vocabularies without void:sparqlEndpoint, so a changed default must not
    hit an entry parsed under the old one.

    Raises:
        FileNotFoundError: If the configuration file is missing.
        ValueError: If a vocabulary is misconfigured.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{path} is missing, please provide one.")
    if cache is None:
        cache = NullCache()

    key = "vocabularies:" + fingerprint(path.read_bytes() + b"\n" + default_endpoint.encode("utf-8"))
    parsed = cache.get(key)
    if parsed is None:
        parsed = parse_vocabularies_file(path, default_endpoint)
        cache.put(key, parsed)
    else:
        logger.debug("Using cached vocabulary configuration for %s", path)

    return VocabularyRegistry(
        [Vocabulary.from_dict(v) for v in parsed["vocabularies"]],
        [VocabularyCategory.from_dict(c) for c in parsed["categories"]],
        default_endpoint=default_endpoint,
        default_dialect=default_dialect,
        transport=transport,
        timeout=timeout,
    )
