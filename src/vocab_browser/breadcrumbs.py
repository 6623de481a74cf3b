"""
Breadcrumb paths from a concept up to the roots of its hierarchy.

The input is the transitive broader map returned by
``GenericSparql.query_transitive_broaders``:

    {
        "http://ex.org/cats": {"label": "cats", "direct": {"http://ex.org/mammals": "mammals"}},
        "http://ex.org/mammals": {"label": "mammals", "direct": {}},
    }

Every root-to-concept path is enumerated (a concept may have several
broaders). Long paths keep the crumbs nearest the concept visible; the rest are
hidden behind a single "..." placeholder and reported separately in
``combined`` so a UI can expand them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

VISIBLE_CRUMBS = 5
HIDDEN_LABEL = "..."


@dataclass
class Breadcrumb:
    """One step of a breadcrumb path."""

    uri: str
    label: str | None
    hidden_label: str | None = None
    hide_label: bool = False

    def hide(self) -> None:
        """Show "..." instead of the label, keeping the label in hidden_label."""
        if not self.hide_label:
            self.hidden_label = self.label
            self.label = HIDDEN_LABEL
            self.hide_label = True

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"uri": self.uri, "label": self.label}
        if self.hide_label:
            result["hiddenLabel"] = self.hidden_label
            result["hideLabel"] = True
        return result


@dataclass
class Breadcrumbs:
    """Displayable paths (root first) and the hidden crumbs of each path."""

    paths: list[list[Breadcrumb]] = field(default_factory=list)
    combined: list[list[Breadcrumb]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "paths": [[c.to_dict() for c in path] for path in self.paths],
            "combined": [[c.to_dict() for c in path] for path in self.combined],
        }


def enumerate_paths(broaders: dict[str, dict[str, Any]], uri: str) -> list[list[Breadcrumb]]:
    """List every path from the roots above ``uri`` down to ``uri``.

    Paths are returned root first, in depth-first order over the ``direct``
    broaders. Broaders already on the current path (including the concept
    itself) are skipped; a concept left without broaders ends the path.
    """
    paths: list[list[Breadcrumb]] = []
    # (concept, crumbs so far from the target upwards as (uri, label) pairs)
    stack: list[tuple[str, tuple[tuple[str, str | None], ...]]] = [(uri, ())]

    while stack:
        current, trail = stack.pop()
        entry = broaders.get(current)
        if entry is not None:
            seen = {step_uri for step_uri, _ in trail}
            seen.add(current)
            parents = [b for b in entry.get("direct") or {} if b not in seen]
        else:
            parents = []

        if parents:
            extended = trail + ((current, entry.get("label")),)
            # reversed so the first broader is expanded first
            for parent in reversed(parents):
                stack.append((parent, extended))
            continue

        if entry is not None:
            trail = trail + ((current, entry.get("label")),)
        if trail:
            paths.append([Breadcrumb(step_uri, label) for step_uri, label in reversed(trail)])

    return paths


def hide_distant_crumbs(path: list[Breadcrumb], visible: int = VISIBLE_CRUMBS) -> None:
    """Hide every crumb of a root-first path except the ``visible`` last ones."""
    if len(path) > visible:
        for crumb in path[: len(path) - visible]:
            crumb.hide()


def combine_crumbs(paths: list[list[Breadcrumb]]) -> tuple[list[list[Breadcrumb]], list[list[Breadcrumb]]]:
    """Collapse each path's hidden crumbs into its first hidden crumb.

    Returns:
        (displayed paths, hidden crumbs per path). A path without hidden crumbs
        is unchanged and has an empty hidden list.
    """
    displayed = []
    combined = []
    for path in paths:
        hidden = [crumb for crumb in path if crumb.hide_label]
        combined.append(hidden)
        if hidden:
            first = hidden[0]
            displayed.append([c for c in path if not c.hide_label or c is first])
        else:
            displayed.append(list(path))
    return displayed, combined


def build_breadcrumbs(
    broaders: dict[str, dict[str, Any]], uri: str, visible: int = VISIBLE_CRUMBS
) -> Breadcrumbs:
    """Build display-ready breadcrumb paths for a concept.

    Args:
        broaders: Transitive broader map for the concept.
        uri: The concept the paths lead to.
        visible: Number of crumbs nearest the concept kept visible per path.
    """
    paths = enumerate_paths(broaders, uri)
    for path in paths:
        hide_distant_crumbs(path, visible)
    displayed, combined = combine_crumbs(paths)
    return Breadcrumbs(paths=displayed, combined=combined)
