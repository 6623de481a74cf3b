"""Tests for breadcrumbs module."""
from vocab_browser import breadcrumbs
from vocab_browser.breadcrumbs import Breadcrumb, build_breadcrumbs, enumerate_paths

EX = "http://example.org/"


def chain(length):
    """Broader map for a single chain c0 (target) -> c1 -> ... -> c{length-1} (root)."""
    result = {}
    for i in range(length):
        direct = {f"{EX}c{i + 1}": f"c{i + 1}"} if i + 1 < length else {}
        result[f"{EX}c{i}"] = {"label": f"c{i}", "direct": direct}
    return result


def uris(path):
    return [crumb.uri for crumb in path]


class TestEnumeratePaths:
    """Tests for root-to-concept path enumeration."""

    def test_concept_without_broaders(self):
        """Test that a root concept yields one path with only itself."""
        broaders = {EX + "root": {"label": "root", "direct": {}}}

        paths = enumerate_paths(broaders, EX + "root")
        assert len(paths) == 1
        assert paths[0] == [Breadcrumb(EX + "root", "root")]
        assert paths[0][0].hide_label is False

    def test_chain_is_root_first(self):
        paths = enumerate_paths(chain(3), EX + "c0")
        assert [uris(p) for p in paths] == [[EX + "c2", EX + "c1", EX + "c0"]]
        assert [c.label for c in paths[0]] == ["c2", "c1", "c0"]

    def test_two_ancestor_chains(self):
        broaders = {
            EX + "cats": {"label": "cats", "direct": {EX + "pets": "pets", EX + "mammals": "mammals"}},
            EX + "pets": {"label": "pets", "direct": {}},
            EX + "mammals": {"label": "mammals", "direct": {EX + "animals": "animals"}},
            EX + "animals": {"label": "animals", "direct": {}},
        }

        paths = enumerate_paths(broaders, EX + "cats")
        assert [uris(p) for p in paths] == [
            [EX + "pets", EX + "cats"],
            [EX + "animals", EX + "mammals", EX + "cats"],
        ]

    def test_diamond(self):
        """Test that a shared ancestor appears in every path leading through it."""
        broaders = {
            EX + "d": {"label": "d", "direct": {EX + "b": "b", EX + "c": "c"}},
            EX + "b": {"label": "b", "direct": {EX + "a": "a"}},
            EX + "c": {"label": "c", "direct": {EX + "a": "a"}},
            EX + "a": {"label": "a", "direct": {}},
        }

        paths = enumerate_paths(broaders, EX + "d")
        assert [uris(p) for p in paths] == [
            [EX + "a", EX + "b", EX + "d"],
            [EX + "a", EX + "c", EX + "d"],
        ]

    def test_self_loop(self):
        """Test that a concept listed as its own broader is not repeated."""
        broaders = {
            EX + "cats": {"label": "cats", "direct": {EX + "cats": "cats", EX + "mammals": "mammals"}},
            EX + "mammals": {"label": "mammals", "direct": {}},
        }

        paths = enumerate_paths(broaders, EX + "cats")
        assert [uris(p) for p in paths] == [[EX + "mammals", EX + "cats"]]

    def test_only_self_loop(self):
        broaders = {EX + "cats": {"label": "cats", "direct": {EX + "cats": "cats"}}}

        paths = enumerate_paths(broaders, EX + "cats")
        assert [uris(p) for p in paths] == [[EX + "cats"]]

    def test_longer_cycle_terminates(self):
        broaders = {
            EX + "a": {"label": "a", "direct": {EX + "b": "b"}},
            EX + "b": {"label": "b", "direct": {EX + "a": "a"}},
        }

        paths = enumerate_paths(broaders, EX + "a")
        assert [uris(p) for p in paths] == [[EX + "b", EX + "a"]]

    def test_broader_missing_from_map(self):
        """Test that a broader without data ends the path without a crumb."""
        broaders = {EX + "cats": {"label": "cats", "direct": {EX + "unknown": None}}}

        paths = enumerate_paths(broaders, EX + "cats")
        assert [uris(p) for p in paths] == [[EX + "cats"]]

    def test_empty_map(self):
        assert enumerate_paths({}, EX + "cats") == []

    def test_deep_chain(self):
        paths = enumerate_paths(chain(2000), EX + "c0")
        assert len(paths) == 1
        assert len(paths[0]) == 2000


class TestHiding:
    """Tests for hiding distant crumbs."""

    def test_short_path_untouched(self):
        path = enumerate_paths(chain(5), EX + "c0")[0]
        breadcrumbs.hide_distant_crumbs(path)
        assert not any(c.hide_label for c in path)

    def test_hide_keeps_label(self):
        crumb = Breadcrumb(EX + "a", "animals")
        crumb.hide()
        crumb.hide()
        assert crumb.label == breadcrumbs.HIDDEN_LABEL
        assert crumb.hidden_label == "animals"
        assert crumb.to_dict() == {
            "uri": EX + "a",
            "label": "...",
            "hiddenLabel": "animals",
            "hideLabel": True,
        }


class TestBuildBreadcrumbs:
    """Tests for the full build with hiding and combining."""

    def test_root_concept(self):
        result = build_breadcrumbs({EX + "c0": {"label": "c0", "direct": {}}}, EX + "c0")
        assert len(result.paths) == 1
        assert len(result.paths[0]) == 1
        assert result.paths[0][0].hide_label is False
        assert result.combined == [[]]

    def test_path_of_eight(self):
        """Test that three distant crumbs are hidden and shown as one placeholder."""
        result = build_breadcrumbs(chain(8), EX + "c0")

        displayed = result.paths[0]
        assert len(displayed) == 6
        assert displayed[0].uri == EX + "c7"
        assert displayed[0].hide_label is True
        assert displayed[0].label == "..."
        assert [c.label for c in displayed[1:]] == ["c4", "c3", "c2", "c1", "c0"]

        hidden = result.combined[0]
        assert uris(hidden) == [EX + "c7", EX + "c6", EX + "c5"]
        assert [c.hidden_label for c in hidden] == ["c7", "c6", "c5"]
        assert all(c.hide_label for c in hidden)

    def test_two_chains_compressed_independently(self):
        broaders = chain(7)
        broaders[EX + "c0"]["direct"][EX + "x1"] = "x1"
        broaders[EX + "x1"] = {"label": "x1", "direct": {EX + "x2": "x2"}}
        broaders[EX + "x2"] = {"label": "x2", "direct": {}}

        result = build_breadcrumbs(broaders, EX + "c0")
        assert len(result.paths) == 2
        long_path, short_path = result.paths
        assert len(long_path) == 6
        assert uris(result.combined[0]) == [EX + "c6", EX + "c5"]
        assert uris(short_path) == [EX + "x2", EX + "x1", EX + "c0"]
        assert result.combined[1] == []

    def test_custom_visible(self):
        result = build_breadcrumbs(chain(4), EX + "c0", visible=2)
        assert uris(result.paths[0]) == [EX + "c3", EX + "c1", EX + "c0"]
        assert len(result.combined[0]) == 2

    def test_to_dict(self):
        result = build_breadcrumbs(chain(2), EX + "c0")
        assert result.to_dict() == {
            "paths": [[{"uri": EX + "c1", "label": "c1"}, {"uri": EX + "c0", "label": "c0"}]],
            "combined": [[]],
        }

    def test_no_paths(self):
        result = build_breadcrumbs({}, EX + "c0")
        assert result.paths == []
        assert result.combined == []
