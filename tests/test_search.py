"""Tests for search module (search orchestrator)."""
from unittest.mock import MagicMock, patch

import pytest

from vocab_browser import search
from vocab_browser.models import UNKNOWN_VOCABULARY, ConceptInfo
from vocab_browser.registry import Vocabulary, VocabularyNotFoundError, VocabularyRegistry
from vocab_browser.store import BackendError

ENDPOINT = "http://sparql.example/ds"
YSO = "http://www.yso.fi/onto/yso/"
KOKO = "http://www.yso.fi/onto/koko/"
AFO = "http://www.yso.fi/onto/afo/"


@pytest.fixture
def registry():
    return VocabularyRegistry([
        Vocabulary(id="yso", uri_space=YSO, graph=YSO, endpoint=ENDPOINT,
                   array_class="http://purl.org/iso25964/skos-thes#ThesaurusArray"),
        Vocabulary(id="koko", uri_space=KOKO, graph=KOKO, endpoint=ENDPOINT),
        Vocabulary(id="afo", uri_space=AFO, graph=AFO, endpoint=ENDPOINT),
    ], default_endpoint=ENDPOINT, transport=MagicMock())


@pytest.fixture
def backends(registry):
    """Replace the per-vocabulary and default backends with mocks."""
    single = MagicMock(name="single")
    default = MagicMock(name="default")
    with patch.object(registry, "get_sparql", return_value=single), \
            patch.object(registry, "get_default_sparql", return_value=default):
        yield single, default


@pytest.fixture
def orchestrator(registry):
    return search.SearchOrchestrator(registry, search_limit=50)


class TestNormalizeVocabIds:
    """Tests for normalize_vocab_ids."""

    def test_none(self):
        assert search.normalize_vocab_ids(None) == []

    def test_single_string(self):
        assert search.normalize_vocab_ids("yso") == ["yso"]

    def test_duplicates_removed(self):
        assert search.normalize_vocab_ids(["yso", "koko", "yso"]) == ["yso", "koko"]


class TestSearchConcepts:
    """Tests for search_concepts."""

    @pytest.mark.parametrize("term", ["", "   ", "*", None])
    @pytest.mark.parametrize("vocab_ids", [None, "yso", ["yso", "koko"]])
    def test_empty_term_returns_nothing(self, orchestrator, backends, term, vocab_ids):
        single, default = backends
        assert orchestrator.search_concepts(term, vocab_ids) == []
        single.query_concepts.assert_not_called()
        default.query_concepts.assert_not_called()

    def test_single_vocabulary(self, orchestrator, backends):
        """Test that hits of a single-vocabulary search carry that vocabulary."""
        single, default = backends
        single.query_concepts.return_value = [
            {"uri": YSO + "p1", "prefLabel": "cats", "lang": "en", "graph": YSO, "localname": "p1"},
            {"uri": YSO + "p2", "prefLabel": "catapults", "lang": "en", "graph": YSO, "localname": "p2"},
        ]

        hits = orchestrator.search_concepts("cat*", "yso", "en")

        assert [h.vocab for h in hits] == ["yso", "yso"]
        assert hits[0].localname == "p1"
        assert hits[0].exvocab is None
        assert hits[0].voc.id == "yso"
        default.query_concepts.assert_not_called()

        args, kwargs = single.query_concepts.call_args
        assert args[0] == "cat*"
        assert [v.id for v in args[1]] == ["yso"]
        assert args[2] == "en"
        assert args[3] == 50
        assert kwargs["array_class"] == "http://purl.org/iso25964/skos-thes#ThesaurusArray"
        assert kwargs["type_"] == "skos:Concept"

    def test_single_vocabulary_borrowed_concept(self, orchestrator, backends):
        """Test that a concept from another vocabulary's namespace is marked."""
        single, _ = backends
        single.query_concepts.return_value = [
            {"uri": KOKO + "p9", "prefLabel": "cats", "lang": "en", "graph": YSO, "localname": "x"},
        ]

        hit = orchestrator.search_concepts("cat*", "yso")[0]

        assert hit.vocab == "yso"
        assert hit.exvocab == "koko"
        assert hit.localname is None

    def test_multi_vocabulary_uses_default_backend(self, orchestrator, backends):
        single, default = backends
        default.query_concepts.return_value = [
            {"uri": KOKO + "p1", "prefLabel": "cats", "lang": "en", "graph": KOKO},
            {"uri": YSO + "p1", "prefLabel": "cats", "lang": "en", "graph": YSO},
        ]

        hits = orchestrator.search_concepts("cat*", ["yso", "koko"], offset=10, limit=5)

        assert [h.vocab for h in hits] == ["koko", "yso"]
        assert all(h.exvocab is None for h in hits)
        single.query_concepts.assert_not_called()
        args, kwargs = default.query_concepts.call_args
        assert [v.id for v in args[1]] == ["yso", "koko"]
        assert args[3] == 5
        assert args[4] == 10
        assert kwargs["array_class"] is None

    def test_global_search_borrowed_and_unknown(self, orchestrator, backends):
        """Test exvocab marking for concepts outside the graph's vocabulary."""
        _, default = backends
        default.query_concepts.return_value = [
            {"uri": AFO + "p5", "prefLabel": "cats", "lang": "en", "graph": YSO},
            {"uri": "http://other.org/p1", "prefLabel": "cats", "lang": "en", "graph": KOKO},
        ]

        hits = orchestrator.search_concepts("cat*")

        assert hits[0].vocab == "yso"
        assert hits[0].exvocab == "afo"
        assert hits[1].vocab == "koko"
        assert hits[1].exvocab == UNKNOWN_VOCABULARY
        assert [v for v in default.query_concepts.call_args.args[1]] == []

    def test_unresolvable_graph_is_unknown(self, orchestrator, backends, caplog):
        """Test that a hit from an unknown graph is tagged, not fatal."""
        _, default = backends
        default.query_concepts.return_value = [
            {"uri": YSO + "p1", "prefLabel": "cats", "lang": "en", "graph": "http://stray/graph"},
            {"uri": KOKO + "p1", "prefLabel": "cats", "lang": "en", "graph": KOKO},
        ]

        with caplog.at_level("WARNING", logger="vocab_browser.search"):
            hits = orchestrator.search_concepts("cat*")

        assert hits[0].vocab == UNKNOWN_VOCABULARY
        assert hits[0].exvocab == "yso"
        assert hits[1].vocab == "koko"
        assert "http://stray/graph" in caplog.text

    def test_graph_not_in_hit(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = [
            {"uri": YSO + "p1", "prefLabel": "cats", "lang": "en", "graph": YSO},
        ]
        assert "graph" not in orchestrator.search_concepts("cat*", "yso")[0].to_dict()

    def test_full_alphabetical_index(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = []

        orchestrator.search_concepts(search.FULL_INDEX_TERM, "yso")
        assert single.query_concepts.call_args.args[0] == "*"

    def test_filters_passed_through(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = []

        orchestrator.search_concepts("cat*", "yso", type_="skos:Collection",
                                     parent=YSO + "p100", group=YSO + "g1", hidden=False)

        kwargs = single.query_concepts.call_args.kwargs
        assert kwargs["type_"] == "skos:Collection"
        assert kwargs["parent"] == YSO + "p100"
        assert kwargs["group"] == YSO + "g1"
        assert kwargs["hidden"] is False

    def test_unknown_vocabulary(self, orchestrator, backends):
        with pytest.raises(VocabularyNotFoundError):
            orchestrator.search_concepts("cat*", "nope")

    def test_backend_error_propagates(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.side_effect = BackendError("endpoint down")

        with pytest.raises(BackendError):
            orchestrator.search_concepts("cat*", "yso")


class TestSearchConceptsAndInfo:
    """Tests for search_concepts_and_info."""

    def test_order_and_found_by(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = [
            {"uri": YSO + "p1", "prefLabel": "cats", "lang": "en", "graph": YSO},
            {"uri": YSO + "p2", "prefLabel": "dogs", "altLabel": "canines", "lang": "en", "graph": YSO},
            {"uri": YSO + "p3", "hiddenLabel": "kats", "lang": "en", "graph": YSO},
            {"uri": YSO + "p4", "prefLabel": "kissat", "altLabel": "katit", "lang": "fi", "graph": YSO},
        ]
        single.query_concept_info.side_effect = lambda uris, *args: [ConceptInfo(uri=u) for u in uris]

        infos = orchestrator.search_concepts_and_info("cat*", "yso", ui_lang="en")

        assert [i.uri for i in infos] == [YSO + "p1", YSO + "p2", YSO + "p3", YSO + "p4"]
        assert infos[0].found_by_type is None
        assert (infos[1].found_by_type, infos[1].found_by) == ("alt", "canines")
        assert (infos[2].found_by_type, infos[2].found_by) == ("hidden", "kats")
        # lang is applied last
        assert (infos[3].found_by_type, infos[3].found_by) == ("lang", "kissat (fi)")
        assert all(i.vocab == "yso" for i in infos)

        args = single.query_concept_info.call_args.args
        assert args[0] == [YSO + "p1", YSO + "p2", YSO + "p3", YSO + "p4"]
        assert args[1] == "http://purl.org/iso25964/skos-thes#ThesaurusArray"
        assert args[3] == "yso"

    def test_limit_defaults_to_info_limit(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = []

        orchestrator.search_concepts_and_info("cat*", "yso")
        assert single.query_concepts.call_args.args[3] == search.DEFAULT_INFO_LIMIT

    def test_configured_info_limit(self, registry, backends):
        single, _ = backends
        single.query_concepts.return_value = []
        orchestrator = search.SearchOrchestrator(registry, info_limit=7)

        orchestrator.search_concepts_and_info("cat*", "yso")
        assert single.query_concepts.call_args.args[3] == 7

        orchestrator.search_concepts_and_info("cat*", "yso", limit=3)
        assert single.query_concepts.call_args.args[3] == 3

    def test_no_hits_skips_info_query(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = []

        assert orchestrator.search_concepts_and_info("cat*", "yso") == []
        single.query_concept_info.assert_not_called()

    def test_empty_term(self, orchestrator, backends):
        assert orchestrator.search_concepts_and_info("  ", ["yso", "koko"]) == []

    def test_multi_vocabulary_info(self, orchestrator, backends):
        """Test that the default backend fetches details and borrowed hits keep their owner."""
        _, default = backends
        default.query_concepts.return_value = [
            {"uri": AFO + "p1", "prefLabel": "cats", "lang": "en", "graph": YSO},
            {"uri": KOKO + "p1", "prefLabel": "cats", "lang": "en", "graph": KOKO},
        ]
        default.query_concept_info.side_effect = lambda uris, *args: [ConceptInfo(uri=u) for u in uris]

        infos = orchestrator.search_concepts_and_info("cat*", ["yso", "koko"])

        assert [i.vocab for i in infos] == ["afo", "koko"]
        args = default.query_concept_info.call_args.args
        assert args[1] is None
        assert args[3] is None

    def test_ui_lang_match_not_flagged(self, orchestrator, backends):
        single, _ = backends
        single.query_concepts.return_value = [
            {"uri": YSO + "p1", "prefLabel": "kissat", "lang": "fi", "graph": YSO},
        ]
        single.query_concept_info.side_effect = lambda uris, *args: [ConceptInfo(uri=u) for u in uris]

        infos = orchestrator.search_concepts_and_info("kis*", "yso", ui_lang="fi")
        assert infos[0].found_by_type is None


class TestGetBreadcrumbs:
    """Tests for get_breadcrumbs."""

    def test_breadcrumbs_from_backend(self, orchestrator, backends):
        single, _ = backends
        single.query_transitive_broaders.return_value = {
            YSO + "p1": {"label": "cats", "direct": {YSO + "p2": "mammals"}},
            YSO + "p2": {"label": "mammals", "direct": {}},
        }

        crumbs = orchestrator.get_breadcrumbs("yso", YSO + "p1", "en")

        assert [[c.label for c in p] for p in crumbs.paths] == [["mammals", "cats"]]
        single.query_transitive_broaders.assert_called_once_with(YSO + "p1", 1000, "en")

    def test_unknown_vocabulary(self, orchestrator, backends):
        with pytest.raises(VocabularyNotFoundError):
            orchestrator.get_breadcrumbs("nope", YSO + "p1")


class TestEndToEnd:
    """Search through a real backend over a local pyoxigraph store."""

    def test_search_and_info_round_trip(self, tmp_path):
        pytest.importorskip("pyoxigraph")
        from vocab_browser.store import OxigraphStore

        path = tmp_path / "yso.ttl"
        path.write_text(f"""
@prefix skos: <http://www.w3.org/2004/02/skos/core#> .
@prefix yso: <{YSO}> .

yso:p1 a skos:Concept ; skos:prefLabel "cats"@en ; skos:altLabel "felines"@en .
yso:p2 a skos:Concept ; skos:prefLabel "catapults"@en .
yso:p3 a skos:Concept ; skos:prefLabel "dogs"@en ; skos:hiddenLabel "cats and dogs"@en .
""")
        store = OxigraphStore()
        store.load(path, graph=YSO)
        reg = VocabularyRegistry(
            [Vocabulary(id="yso", uri_space=YSO, graph=YSO, endpoint=ENDPOINT)],
            default_endpoint=ENDPOINT,
            transport=lambda url: store,
        )
        orchestrator = search.SearchOrchestrator(reg)

        hits = orchestrator.search_concepts("cat*", "yso", "en")
        # ordered by the matched label
        assert [h.uri for h in hits] == [YSO + "p2", YSO + "p1", YSO + "p3"]
        assert hits[2].hidden_label == "cats and dogs"

        infos = orchestrator.search_concepts_and_info("cat*", "yso", "en")
        assert [i.uri for i in infos] == [h.uri for h in hits]
        assert infos[2].found_by_type == "hidden"
        assert infos[1].get_label("en") == "cats"
