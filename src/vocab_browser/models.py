"""Result records shared by the query backends and the search orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .registry import Vocabulary

UNKNOWN_VOCABULARY = "???"

FOUND_BY_ALT = "alt"
FOUND_BY_HIDDEN = "hidden"
FOUND_BY_LANG = "lang"


@dataclass
class SearchHit:
    """A single concept matched by a term search."""

    uri: str
    pref_label: str | None = None
    alt_label: str | None = None  # set when the term matched an altLabel
    hidden_label: str | None = None  # set when the term matched a hiddenLabel
    lang: str | None = None  # language of the matched label
    localname: str | None = None  # URI minus the vocabulary URI space
    vocab: str | None = None  # id of the vocabulary the hit was found in
    voc: Vocabulary | None = field(default=None, repr=False, compare=False)
    exvocab: str | None = None  # id of the vocabulary owning the URI, if different

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> SearchHit:
        """Create from a raw backend record. The graph field is not carried over."""
        return cls(
            uri=record["uri"],
            pref_label=record.get("prefLabel"),
            alt_label=record.get("altLabel"),
            hidden_label=record.get("hiddenLabel"),
            lang=record.get("lang"),
            localname=record.get("localname"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"uri": self.uri, "vocab": self.vocab}
        for key, value in (
            ("prefLabel", self.pref_label),
            ("altLabel", self.alt_label),
            ("hiddenLabel", self.hidden_label),
            ("lang", self.lang),
            ("localname", self.localname),
            ("exvocab", self.exvocab),
        ):
            if value is not None:
                result[key] = value
        return result


@dataclass
class ConceptInfo:
    """Concept details fetched for display after a search."""

    uri: str
    types: list[str] = field(default_factory=list)
    pref_labels: dict[str, str] = field(default_factory=dict)  # lang -> prefLabel
    alt_labels: dict[str, list[str]] = field(default_factory=dict)  # lang -> altLabels
    broaders: list[str] = field(default_factory=list)
    narrowers: list[str] = field(default_factory=list)
    vocab: str | None = None
    found_by: str | None = None
    found_by_type: str | None = None

    def set_found_by(self, text: str, reason: str) -> None:
        """Record why the concept matched when it was not via its prefLabel."""
        self.found_by = text
        self.found_by_type = reason

    def get_label(self, lang: str | None = None) -> str | None:
        """Label in the given language, falling back to any label."""
        if lang and lang in self.pref_labels:
            return self.pref_labels[lang]
        if "" in self.pref_labels:
            return self.pref_labels[""]
        return next(iter(self.pref_labels.values()), None)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "uri": self.uri,
            "types": self.types,
            "prefLabels": self.pref_labels,
            "altLabels": self.alt_labels,
            "broaders": self.broaders,
            "narrowers": self.narrowers,
        }
        if self.vocab:
            result["vocab"] = self.vocab
        if self.found_by_type:
            result["foundBy"] = self.found_by
            result["foundByType"] = self.found_by_type
        return result
