"""
SPARQL transports used by the query backends.

Two interchangeable transports return SELECT bindings in the SPARQL 1.1 JSON
results shape (``{"var": {"value": ..., "lang": ...}}``):

- HttpSparqlEndpoint: a remote SPARQL protocol endpoint, queried with requests.
- OxigraphStore: a local pyoxigraph store loaded from RDF files.

Example:
    >>> endpoint = HttpSparqlEndpoint("http://localhost:3030/ds/sparql")
    >>> endpoint.query("SELECT ?s WHERE { ?s ?p ?o } LIMIT 1")
    [{'s': {'value': 'http://example.org/s'}}]
"""
from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Longer queries are POSTed to stay under URL length limits
MAX_GET_QUERY_LENGTH = 2000


class BackendError(RuntimeError):
    """A SPARQL query could not be executed or its result could not be read."""


class HttpSparqlEndpoint:
    """Remote SPARQL endpoint speaking the SPARQL 1.1 protocol."""

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"HttpSparqlEndpoint({self.url!r})"

    def query(self, sparql: str) -> list[dict]:
        """Execute a SPARQL SELECT query and return its bindings.

        Raises:
            BackendError: On timeouts, HTTP errors and unreadable responses.
        """
        try:
            import requests
        except ImportError as e:
            raise ImportError(
                "requests required for remote SPARQL endpoints. "
                "Install with: pip install requests"
            ) from e

        headers = {"Accept": "application/sparql-results+json"}
        try:
            if len(sparql) > MAX_GET_QUERY_LENGTH:
                response = requests.post(
                    self.url, data={"query": sparql}, headers=headers, timeout=self.timeout
                )
            else:
                response = requests.get(
                    self.url, params={"query": sparql}, headers=headers, timeout=self.timeout
                )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as e:
            logger.warning("SPARQL query timed out for %s: %s", self.url, e)
            raise BackendError(f"SPARQL query timed out for {self.url}") from e
        except requests.RequestException as e:
            logger.warning("SPARQL query failed for %s: %s", self.url, e)
            raise BackendError(f"SPARQL query failed for {self.url}: {e}") from e
        except ValueError as e:
            raise BackendError(f"Invalid SPARQL JSON response from {self.url}") from e

        try:
            return data["results"]["bindings"]
        except (KeyError, TypeError) as e:
            raise BackendError(f"Unexpected SPARQL response shape from {self.url}") from e


class OxigraphStore:
    """Local RDF store using Oxigraph (pyoxigraph).

    Loads RDF files into the default graph or a named graph and answers SPARQL
    SELECT queries. Used for vocabulary configuration files and for serving
    small vocabularies without a separate triple store.

    Example:
        >>> store = OxigraphStore()
        >>> store.load("yso.ttl", graph="http://www.yso.fi/onto/yso/")
        >>> store.query("SELECT ?s WHERE { GRAPH ?g { ?s a ?t } } LIMIT 10")
    """

    def __init__(self, persistent_path: Path | None = None):
        """Initialize the store.

        Args:
            persistent_path: If provided, use on-disk storage at this path.
                             Otherwise, use in-memory storage.
        """
        try:
            import pyoxigraph
        except ImportError as e:
            raise ImportError(
                "pyoxigraph required for the local store. "
                "Install with: pip install pyoxigraph"
            ) from e

        self._pyoxigraph = pyoxigraph
        if persistent_path:
            persistent_path.parent.mkdir(parents=True, exist_ok=True)
            self._store = pyoxigraph.Store(str(persistent_path))
        else:
            self._store = pyoxigraph.Store()
        self._loaded: set[tuple[str, str | None]] = set()

    def _format_for(self, path: Path, format: str | None):
        rdf_format = self._pyoxigraph.RdfFormat
        formats = {
            "nt": rdf_format.N_TRIPLES,
            "ntriples": rdf_format.N_TRIPLES,
            "ttl": rdf_format.TURTLE,
            "turtle": rdf_format.TURTLE,
            "rdf": rdf_format.RDF_XML,
            "xml": rdf_format.RDF_XML,
            "nq": rdf_format.N_QUADS,
            "trig": rdf_format.TRIG,
        }
        key = format or path.suffix.lower().lstrip(".")
        return formats.get(key, rdf_format.TURTLE)

    def load(self, path: Path | str, format: str | None = None, graph: str | None = None) -> int:
        """Load RDF data from a file.

        Args:
            path: RDF file (Turtle, N-Triples, RDF/XML, N-Quads, TriG).
            format: Format key ("ttl", "nt", ...). Detected from the suffix if omitted.
            graph: Named graph to load triples into. Default graph if omitted.

        Returns:
            Number of quads added.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"RDF file not found: {path}")

        key = (str(path.resolve()), graph)
        if key in self._loaded:
            logger.debug("File already loaded: %s", path)
            return 0

        rdf_format = self._format_for(path, format)
        initial_count = len(self._store)
        with open(path, "rb") as f:
            if graph:
                self._store.load(f, rdf_format, to_graph=self._pyoxigraph.NamedNode(graph))
            else:
                self._store.load(f, rdf_format)

        loaded = len(self._store) - initial_count
        self._loaded.add(key)
        logger.info("Loaded %d quads from %s (total: %d)", loaded, path, len(self._store))
        return loaded

    def query(self, sparql: str) -> list[dict]:
        """Execute a SPARQL SELECT query.

        Raises:
            BackendError: If the query cannot be parsed or evaluated.
        """
        try:
            query_results = self._store.query(sparql)
            variables = query_results.variables
            results = []
            for solution in query_results:
                row = {}
                for var in variables:
                    value = solution[var]
                    if value is None:
                        continue
                    binding = {"value": value.value}
                    if getattr(value, "language", None):
                        binding["xml:lang"] = value.language
                    row[var.value] = binding
                results.append(row)
        except Exception as e:
            raise BackendError(f"Local SPARQL query failed: {e}") from e
        return results

    def __len__(self) -> int:
        return len(self._store)
