"""
Concept search across one, several or all configured vocabularies.

The orchestrator picks the backend for a request, runs the term search and
annotates each hit with the vocabulary it came from. When a hit's URI lies in
another vocabulary's URI space (the concept is borrowed from that vocabulary)
the hit is marked with ``exvocab``.

Example:
    >>> orchestrator = SearchOrchestrator(load_registry("vocabularies.ttl"))
    >>> [hit.uri for hit in orchestrator.search_concepts("cat*", "yso", "en")]
    ['http://www.yso.fi/onto/yso/p1234']
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from .breadcrumbs import VISIBLE_CRUMBS, Breadcrumbs, build_breadcrumbs
from .models import (
    FOUND_BY_ALT,
    FOUND_BY_HIDDEN,
    FOUND_BY_LANG,
    UNKNOWN_VOCABULARY,
    ConceptInfo,
    SearchHit,
)
from .registry import VocabularyNotFoundError, VocabularyRegistry
from .sparql import DEFAULT_TYPE

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 100
DEFAULT_INFO_LIMIT = 20
DEFAULT_BREADCRUMB_DEPTH = 1000

# Pseudo-term requesting every concept, used by the alphabetical index
FULL_INDEX_TERM = "FullAlphabeticalIndex"


def normalize_vocab_ids(vocab_ids: str | Iterable[str] | None) -> list[str]:
    """Turn None, one id or several ids into a list of unique ids."""
    if vocab_ids is None:
        return []
    if isinstance(vocab_ids, str):
        return [vocab_ids]
    return list(dict.fromkeys(vocab_ids))


class SearchOrchestrator:
    """Runs searches and breadcrumb lookups against the registry's backends."""

    def __init__(
        self,
        registry: VocabularyRegistry,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        breadcrumb_depth: int = DEFAULT_BREADCRUMB_DEPTH,
        info_limit: int = DEFAULT_INFO_LIMIT,
    ):
        self.registry = registry
        self.search_limit = search_limit
        self.info_limit = info_limit
        self.breadcrumb_depth = breadcrumb_depth

    def _backend_for(self, vocids: list[str]):
        """Return (backend, array class) for a vocabulary selection."""
        if len(vocids) == 1:
            voc = self.registry.get_vocabulary(vocids[0])
            return self.registry.get_sparql(voc), voc.array_class
        return self.registry.get_default_sparql(), None

    def search_concepts(
        self,
        term: str,
        vocab_ids: str | Iterable[str] | None = None,
        lang: str | None = None,
        type_: str | None = None,
        parent: str | None = None,
        group: str | None = None,
        offset: int = 0,
        limit: int | None = None,
        hidden: bool = True,
    ) -> list[SearchHit]:
        """Search concepts by label.

        Args:
            term: Search term; '*' is a wildcard. An empty term or a lone '*'
                  returns no hits. "FullAlphabeticalIndex" lists every concept.
            vocab_ids: One vocabulary id, several ids, or None for all vocabularies.
            lang: Language of the labels to match, or None for any.
            type_: Concept type (default skos:Concept).
            parent: Only concepts below this concept.
            group: Only members of this group.
            offset: Result offset.
            limit: Maximum number of hits (default: the orchestrator's search limit).
            hidden: Also match hidden labels.

        Raises:
            VocabularyNotFoundError: If a requested vocabulary id is unknown.
            BackendError: If the query fails.
        """
        term = (term or "").strip()
        if term in ("", "*"):
            return []
        if term == FULL_INDEX_TERM:
            term = "*"

        vocids = normalize_vocab_ids(vocab_ids)
        vocabs = [self.registry.get_vocabulary(vocid) for vocid in vocids]
        backend, array_class = self._backend_for(vocids)

        records = backend.query_concepts(
            term,
            vocabs,
            lang,
            self.search_limit if limit is None else limit,
            offset,
            array_class=array_class,
            type_=type_ or DEFAULT_TYPE,
            parent=parent,
            group=group,
            hidden=hidden,
        )

        hits = []
        for record in records:
            hit = SearchHit.from_record(record)
            if len(vocabs) == 1:
                voc = vocabs[0]
                hit.vocab = voc.id
            else:
                try:
                    voc = self.registry.get_vocabulary_by_graph(record.get("graph"))
                    hit.vocab = voc.id
                except VocabularyNotFoundError as e:
                    logger.warning("%s", e)
                    voc = None
                    hit.vocab = UNKNOWN_VOCABULARY
            hit.voc = voc

            # the concept may be borrowed from another vocabulary
            real_voc = self.registry.guess_vocabulary_from_uri(hit.uri)
            if real_voc is not voc:
                hit.localname = None
                hit.exvocab = real_voc.id if real_voc is not None else UNKNOWN_VOCABULARY

            hits.append(hit)
        return hits

    def search_concepts_and_info(
        self,
        term: str,
        vocab_ids: str | Iterable[str] | None = None,
        lang: str | None = None,
        offset: int = 0,
        limit: int | None = None,
        ui_lang: str | None = None,
    ) -> list[ConceptInfo]:
        """Search concepts and fetch their details in one batch.

        The details are in hit order. Each one records how its hit matched:
        through an altLabel ("alt"), a hiddenLabel ("hidden"), or a label in a
        language other than ``ui_lang`` ("lang"). These checks run in that
        order and a later one overwrites an earlier one.

        A limit of None uses the orchestrator's info_limit.

        Raises:
            VocabularyNotFoundError: If a requested vocabulary id is unknown.
            BackendError: If a query fails.
        """
        vocids = normalize_vocab_ids(vocab_ids)
        if limit is None:
            limit = self.info_limit
        hits = self.search_concepts(term, vocids, lang, offset=offset, limit=limit)
        if not hits:
            return []

        backend, array_class = self._backend_for(vocids)
        uris = [hit.uri for hit in hits]
        infos = backend.query_concept_info(
            uris, array_class, lang, vocids[0] if len(vocids) == 1 else None
        )

        for idx, hit in enumerate(hits):
            if idx >= len(infos):
                break
            info = infos[idx]
            if info.vocab is None:
                info.vocab = hit.exvocab or hit.vocab
            if hit.alt_label is not None:
                info.set_found_by(hit.alt_label, FOUND_BY_ALT)
            if hit.hidden_label is not None:
                info.set_found_by(hit.hidden_label, FOUND_BY_HIDDEN)
            if ui_lang and hit.lang and hit.lang != ui_lang:
                info.set_found_by(f"{hit.pref_label} ({hit.lang})", FOUND_BY_LANG)
        return infos

    def get_breadcrumbs(
        self, vocab_id: str, uri: str, lang: str | None = None, visible: int = VISIBLE_CRUMBS
    ) -> Breadcrumbs:
        """Build the breadcrumb paths of a concept in a vocabulary.

        Raises:
            VocabularyNotFoundError: If the vocabulary id is unknown.
            BackendError: If the query fails.
        """
        voc = self.registry.get_vocabulary(vocab_id)
        broaders = self.registry.get_sparql(voc).query_transitive_broaders(
            uri, self.breadcrumb_depth, lang
        )
        return build_breadcrumbs(broaders, uri, visible)
