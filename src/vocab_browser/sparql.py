"""
SPARQL query backends for concept search, concept details and hierarchy.

All dialects implement the same three operations:

- query_concepts: term search returning raw hit records
- query_concept_info: batched concept details, one entry per requested URI
- query_transitive_broaders: ancestor map used to build breadcrumbs

GenericSparql matches terms with anchored, case-insensitive regular
expressions. JenaTextSparql and BigdataSparql add a full-text index prefilter
in the syntax of their triple store and otherwise share the generic queries.
Backends are picked from the static DIALECTS table by tag.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from .models import ConceptInfo

if TYPE_CHECKING:
    from .registry import Vocabulary

logger = logging.getLogger(__name__)

SKOS = "http://www.w3.org/2004/02/skos/core#"
RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
RDFS = "http://www.w3.org/2000/01/rdf-schema#"

DEFAULT_TYPE = "skos:Concept"
# Split large concept info lookups to keep queries reasonably small
INFO_CHUNK_SIZE = 50

_FORBIDDEN_URI_CHARS = re.compile(r'[\s<>"{}|\\^`]')
_CURIE_RE = re.compile(r"^([A-Za-z][\w\-]*):([^/].*)?$")

_LABEL_KINDS = {
    "pref": "prefLabel",
    "alt": "altLabel",
    "hidden": "hiddenLabel",
}
_KIND_PRIORITY = {"pref": 0, "alt": 1, "hidden": 2}


def expand_curie(value: str, prefixes: dict[str, str]) -> str:
    """Expand "prefix:local" using the given namespace map.

    Full URIs and CURIEs with unknown prefixes are returned unchanged.
    """
    match = _CURIE_RE.match(value)
    if match and match.group(1) in prefixes:
        return prefixes[match.group(1)] + (match.group(2) or "")
    return value


def _uri(value: str) -> str:
    """Format a URI as a SPARQL IRI reference."""
    if not value or _FORBIDDEN_URI_CHARS.search(value):
        raise ValueError(f"Invalid URI for SPARQL query: {value!r}")
    return f"<{value}>"


def _literal(value: str) -> str:
    """Format a string as a quoted SPARQL literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def _value(binding: dict[str, Any] | None) -> str | None:
    return binding["value"] if binding else None


class GenericSparql:
    """Backend for any SPARQL 1.1 store, without a full-text index."""

    dialect = "generic"
    extra_prefixes: dict[str, str] = {}

    def __init__(self, endpoint, graph: str | None = None, prefixes: dict[str, str] | None = None):
        """Initialize the backend.

        Args:
            endpoint: Transport with ``query(sparql) -> list[dict]`` bindings.
            graph: Named graph holding the vocabulary, or None for the
                   default backend that searches across graphs.
            prefixes: Namespace map used to expand CURIE arguments.
        """
        self.endpoint = endpoint
        self.graph = graph
        self.prefixes = {"skos": SKOS, "rdf": RDF, "rdfs": RDFS}
        self.prefixes.update(prefixes or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.endpoint!r}, graph={self.graph!r})"

    def _prologue(self) -> str:
        prefixes = {"skos": SKOS, "rdf": RDF, "rdfs": RDFS, **self.extra_prefixes}
        return "\n".join(f"PREFIX {p}: <{ns}>" for p, ns in prefixes.items())

    def _expand(self, value: str) -> str:
        return _uri(expand_curie(value, self.prefixes))

    # -------------------------------------------------------------------------
    # Term matching
    # -------------------------------------------------------------------------

    def _term_filter(self, term: str) -> str:
        """FILTER on ?match for a term with '*' wildcards. Empty for the full index."""
        if term == "*":
            return ""
        pattern = "^" + ".*".join(re.escape(part) for part in term.split("*")) + "$"
        return f"FILTER(regex(str(?match), {_literal(pattern)}, \"i\"))"

    def _text_prefilter(self, term: str, lang: str | None) -> str:
        """Full-text index pattern narrowing ?s or ?match before the FILTER."""
        return ""

    # -------------------------------------------------------------------------
    # Graph scoping
    # -------------------------------------------------------------------------

    def _scope(self, pattern: str, vocabs: Sequence[Vocabulary] = ()) -> str:
        """Wrap a graph pattern so it runs in the right graph(s) and binds ?graph."""
        graphs = [v.graph for v in vocabs] if vocabs else ([self.graph] if self.graph else [])
        if graphs and all(graphs):
            values = " ".join(_uri(g) for g in dict.fromkeys(graphs))
            return f"VALUES ?graph {{ {values} }}\nGRAPH ?graph {{\n{pattern}\n}}"
        if not graphs:
            return f"GRAPH ?graph {{\n{pattern}\n}}"
        # vocabulary data in the default graph
        return pattern

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def build_concepts_query(
        self,
        term: str,
        vocabs: Sequence[Vocabulary],
        lang: str | None,
        limit: int,
        offset: int,
        array_class: str | None = None,
        type_: str = DEFAULT_TYPE,
        parent: str | None = None,
        group: str | None = None,
        hidden: bool = True,
    ) -> str:
        """Build the term search query. See query_concepts for the arguments.

        The inner select pages over distinct concepts, ordered by their first
        matching label, so LIMIT and OFFSET count concepts rather than labels.
        The outer pattern then fetches every matching label of those concepts.
        """
        branches = [
            "{ ?s skos:prefLabel ?match . BIND(\"pref\" AS ?kind) }",
            "{ ?s skos:altLabel ?match . BIND(\"alt\" AS ?kind) }",
        ]
        if hidden:
            branches.append("{ ?s skos:hiddenLabel ?match . BIND(\"hidden\" AS ?kind) }")

        match_lines = ["\nUNION\n".join(branches)]
        prefilter = self._text_prefilter(term, lang)
        if prefilter:
            match_lines.append(prefilter)
        term_filter = self._term_filter(term)
        if term_filter:
            match_lines.append(term_filter)
        if lang:
            match_lines.append(f"FILTER(langMatches(lang(?match), {_literal(lang)}))")

        concept_lines = [f"?s rdf:type/rdfs:subClassOf* {self._expand(type_ or DEFAULT_TYPE)} ."]
        concept_lines.extend(match_lines)
        if array_class:
            concept_lines.append(f"FILTER NOT EXISTS {{ ?s rdf:type {self._expand(array_class)} }}")
        if parent:
            concept_lines.append(f"?s skos:broader* {self._expand(parent)} .")
        if group:
            concept_lines.append(f"{self._expand(group)} skos:member ?s .")

        page = (
            "{\n"
            "SELECT ?s (MIN(lcase(str(?match))) AS ?sort) WHERE {\n"
            f"{self._scope(chr(10).join(concept_lines), vocabs)}\n"
            "}\n"
            "GROUP BY ?s\n"
            "ORDER BY ?sort ?s"
        )
        if limit:
            page += f"\nLIMIT {int(limit)}"
        if offset:
            page += f"\nOFFSET {int(offset)}"
        page += "\n}"

        label_lines = match_lines + [
            "OPTIONAL { ?s skos:prefLabel ?label . FILTER(lang(?label) = lang(?match)) }"
        ]
        return (
            f"{self._prologue()}\n"
            "SELECT DISTINCT ?s ?match ?kind ?label ?graph ?sort WHERE {\n"
            f"{page}\n"
            f"{self._scope(chr(10).join(label_lines), vocabs)}\n"
            "}\n"
            "ORDER BY ?sort ?s lcase(str(?match)) ?kind"
        )

    def query_concepts(
        self,
        term: str,
        vocabs: Sequence[Vocabulary],
        lang: str | None,
        limit: int,
        offset: int,
        array_class: str | None = None,
        type_: str = DEFAULT_TYPE,
        parent: str | None = None,
        group: str | None = None,
        hidden: bool = True,
    ) -> list[dict[str, Any]]:
        """Search concepts whose labels match a term.

        Args:
            term: Search term; '*' is a wildcard, a lone '*' matches every label.
            vocabs: Vocabularies to restrict to. Empty means all graphs.
            lang: Language of the matched label, or None for any language.
            limit: Maximum number of concepts (0 for no limit).
            offset: Number of concepts to skip.
            array_class: Class whose instances are excluded from the hits.
            type_: Concept type, CURIE or URI.
            parent: Only concepts with this concept among their transitive broaders.
            group: Only members of this group.
            hidden: Also match hidden labels.

        Returns:
            Raw records {uri, prefLabel?, altLabel?, hiddenLabel?, lang, graph,
            localname?}, one per concept, in match order.

        Raises:
            BackendError: If the query fails.
        """
        query = self.build_concepts_query(
            term, vocabs, lang, limit, offset, array_class, type_, parent, group, hidden
        )
        rows = self.endpoint.query(query)

        single = vocabs[0] if len(vocabs) == 1 else None
        hits: dict[str, dict[str, Any]] = {}
        for row in rows:
            uri = _value(row.get("s"))
            if not uri:
                continue
            kind = _value(row.get("kind")) or "pref"
            previous = hits.get(uri)
            if previous is not None and _KIND_PRIORITY[previous["_kind"]] <= _KIND_PRIORITY[kind]:
                continue

            match = row["match"]
            record: dict[str, Any] = {
                "_kind": kind,
                "uri": uri,
                "lang": match.get("xml:lang", ""),
                "graph": _value(row.get("graph")) or (single.graph if single else self.graph),
            }
            label = _value(row.get("label"))
            if kind == "pref":
                record["prefLabel"] = match["value"]
            else:
                record[_LABEL_KINDS[kind]] = match["value"]
                if label:
                    record["prefLabel"] = label
            if single is not None and uri.startswith(single.uri_space):
                record["localname"] = single.local_name(uri)
            hits[uri] = record

        for record in hits.values():
            del record["_kind"]
        return list(hits.values())

    def build_concept_info_query(
        self, uris: Sequence[str], array_class: str | None, lang: str | None, vocid: str | None
    ) -> str:
        values = " ".join(_uri(u) for u in uris)
        lines = [
            "?uri ?p ?o .",
            "FILTER(?p IN (rdf:type, skos:prefLabel, skos:altLabel, skos:broader, skos:narrower))",
        ]
        if lang:
            lines.append(f"FILTER(?p != skos:altLabel || langMatches(lang(?o), {_literal(lang)}))")
        if array_class:
            lines.append(
                f"FILTER(?p != skos:narrower || NOT EXISTS {{ ?o rdf:type {self._expand(array_class)} }})"
            )
        pattern = "\n".join(lines)
        if self.graph:
            body = f"GRAPH {_uri(self.graph)} {{\n{pattern}\n}}"
        elif vocid is None:
            body = f"GRAPH ?graph {{\n{pattern}\n}}"
        else:
            body = pattern
        return (
            f"{self._prologue()}\n"
            "SELECT DISTINCT ?uri ?p ?o WHERE {\n"
            f"VALUES ?uri {{ {values} }}\n"
            f"{body}\n"
            "}"
        )

    def query_concept_info(
        self,
        uris: Sequence[str],
        array_class: str | None = None,
        lang: str | None = None,
        vocid: str | None = None,
    ) -> list[ConceptInfo]:
        """Fetch details for a batch of concepts.

        Returns one ConceptInfo per input URI, in input order. URIs with no data
        in the store get an entry with empty fields.

        Raises:
            BackendError: If a query fails.
        """
        unique = list(dict.fromkeys(uris))
        infos = {uri: ConceptInfo(uri=uri, vocab=vocid) for uri in unique}

        for i in range(0, len(unique), INFO_CHUNK_SIZE):
            chunk = unique[i:i + INFO_CHUNK_SIZE]
            rows = self.endpoint.query(self.build_concept_info_query(chunk, array_class, lang, vocid))
            for row in rows:
                info = infos.get(_value(row.get("uri")))
                if info is None:
                    continue
                predicate = row["p"]["value"]
                obj = row["o"]
                if predicate == RDF + "type":
                    if obj["value"] not in info.types:
                        info.types.append(obj["value"])
                elif predicate == SKOS + "prefLabel":
                    info.pref_labels[obj.get("xml:lang", "")] = obj["value"]
                elif predicate == SKOS + "altLabel":
                    info.alt_labels.setdefault(obj.get("xml:lang", ""), []).append(obj["value"])
                elif predicate == SKOS + "broader":
                    info.broaders.append(obj["value"])
                elif predicate == SKOS + "narrower":
                    info.narrowers.append(obj["value"])

        # fresh objects per position so found-by annotations stay per hit
        result = []
        for uri in uris:
            info = infos[uri]
            result.append(ConceptInfo(
                uri=info.uri,
                types=list(info.types),
                pref_labels=dict(info.pref_labels),
                alt_labels={k: list(v) for k, v in info.alt_labels.items()},
                broaders=sorted(info.broaders),
                narrowers=sorted(info.narrowers),
                vocab=info.vocab,
            ))
        return result

    def build_transitive_broaders_query(self, uri: str, limit: int, lang: str | None) -> str:
        label_filter = f"FILTER(langMatches(lang(?label), {_literal(lang)})) " if lang else ""
        pattern = (
            f"{_uri(uri)} skos:broader* ?object .\n"
            "OPTIONAL { ?object skos:broader ?dir . }\n"
            f"OPTIONAL {{ ?object skos:prefLabel ?label . {label_filter}}}"
        )
        body = f"GRAPH {_uri(self.graph)} {{\n{pattern}\n}}" if self.graph else pattern
        query = (
            f"{self._prologue()}\n"
            "SELECT ?object ?label ?dir WHERE {\n"
            f"{body}\n"
            "}"
        )
        if limit:
            query += f"\nLIMIT {int(limit)}"
        return query

    def query_transitive_broaders(
        self, uri: str, limit: int = 1000, lang: str | None = None
    ) -> dict[str, dict[str, Any]]:
        """Fetch the ancestors of a concept.

        Returns:
            {concept URI: {"label": str | None, "direct": {broader URI: label}}}
            for the concept itself and every ancestor found within the limit.

        Raises:
            BackendError: If the query fails.
        """
        rows = self.endpoint.query(self.build_transitive_broaders_query(uri, limit, lang))
        result: dict[str, dict[str, Any]] = {}
        for row in rows:
            obj = _value(row.get("object"))
            if not obj:
                continue
            entry = result.setdefault(obj, {"label": None, "direct": {}})
            label = _value(row.get("label"))
            if label and entry["label"] is None:
                entry["label"] = label
            direct = _value(row.get("dir"))
            if direct:
                entry["direct"][direct] = None

        for entry in result.values():
            for broader in entry["direct"]:
                if broader in result:
                    entry["direct"][broader] = result[broader]["label"]
        return result


def _lucene_term(term: str) -> str:
    """Escape Lucene query syntax, keeping '*' as the wildcard."""
    return re.sub(r'([+\-&|!(){}\[\]^"~?:\\/])', r"\\\1", term.lower())


class JenaTextSparql(GenericSparql):
    """Backend for Apache Jena Fuseki with a jena-text Lucene index."""

    dialect = "jenatext"
    extra_prefixes = {"text": "http://jena.apache.org/text#"}

    def _text_prefilter(self, term: str, lang: str | None) -> str:
        if term == "*":
            return ""
        args = [_literal(_lucene_term(term))]
        if lang:
            args.append(_literal(f"lang:{lang}"))
        return f"?s text:query ({' '.join(args)}) ."


class BigdataSparql(GenericSparql):
    """Backend for Blazegraph (Bigdata) with its built-in full-text search."""

    dialect = "bigdata"
    extra_prefixes = {"bds": "http://www.bigdata.com/rdf/search#"}

    def _text_prefilter(self, term: str, lang: str | None) -> str:
        if term == "*":
            return ""
        return f"?match bds:search {_literal(term)} . ?match bds:matchAllTerms \"true\" ."


DIALECTS: dict[str, type[GenericSparql]] = {
    GenericSparql.dialect: GenericSparql,
    JenaTextSparql.dialect: JenaTextSparql,
    BigdataSparql.dialect: BigdataSparql,
}


def resolve_dialect(tag: str) -> str:
    """Normalize a dialect tag ("JenaText", "jena-text", ...) to a DIALECTS key.

    Raises:
        ValueError: If the dialect is not known.
    """
    key = re.sub(r"[\s_\-]", "", (tag or "").lower())
    if key.endswith("sparql") and key != "sparql":
        key = key[: -len("sparql")]
    if key not in DIALECTS:
        raise ValueError(f"Unknown SPARQL dialect '{tag}'. Known: {', '.join(DIALECTS)}")
    return key


def create_backend(
    dialect: str, endpoint, graph: str | None = None, prefixes: dict[str, str] | None = None
) -> GenericSparql:
    """Create the backend for a dialect tag."""
    return DIALECTS[resolve_dialect(dialect)](endpoint, graph=graph, prefixes=prefixes)
