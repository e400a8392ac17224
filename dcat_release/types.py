"""Core types for the release pipeline.

Triple = (subject, predicate, object) where each position holds a Term:
  uri     — an IRI reference
  literal — a lexical value with an optional datatype or language tag
  bnode   — a blank node label, only ever read back from a store
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, NamedTuple

from .vocab import XSD_STRING


# ---------------------------------------------------------------------------
# TermKind — what occupies a triple position
# ---------------------------------------------------------------------------

class TermKind(Enum):
    URI = "uri"
    LITERAL = "literal"
    BNODE = "bnode"


_KINDS = {kind.value: kind for kind in TermKind}


# ---------------------------------------------------------------------------
# Term — a typed value in a triple
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Term:
    """A URI reference or literal.

    A datatype of xsd:string is dropped on construction: the store returns
    tagged and untagged plain strings alike, so the two must compare equal.
    """
    kind: TermKind | str
    value: str
    datatype: str | None = None
    language: str | None = None

    def __post_init__(self) -> None:
        # Unknown kinds stay plain strings; the codec writes them as strings
        if isinstance(self.kind, str) and self.kind in _KINDS:
            object.__setattr__(self, "kind", _KINDS[self.kind])
        if self.datatype == XSD_STRING:
            object.__setattr__(self, "datatype", None)

    @staticmethod
    def uri(value: str) -> Term:
        return Term(TermKind.URI, str(value))

    @staticmethod
    def literal(value: object, datatype: str | None = None, language: str | None = None) -> Term:
        return Term(
            TermKind.LITERAL,
            str(value),
            datatype=str(datatype) if datatype else None,
            language=language or None,
        )

    @property
    def is_uri(self) -> bool:
        return self.kind == TermKind.URI

    @property
    def is_literal(self) -> bool:
        return self.kind == TermKind.LITERAL

    def __repr__(self) -> str:
        if self.kind == TermKind.URI:
            return f"<{self.value}>"
        if self.datatype:
            return f'"{self.value}"^^<{self.datatype}>'
        if self.language:
            return f'"{self.value}"@{self.language}'
        if self.kind == TermKind.LITERAL:
            return f'"{self.value}"'
        return f"_:{self.value}"


# ---------------------------------------------------------------------------
# Triple — the atomic unit of stored data
# ---------------------------------------------------------------------------

class Triple(NamedTuple):
    subject: Term
    predicate: Term
    object: Term

    def __repr__(self) -> str:
        return f"{self.subject!r} {self.predicate!r} {self.object!r} ."


def chunked(triples: list[Triple], size: int) -> Iterator[list[Triple]]:
    """Yield consecutive slices of at most `size` triples."""
    for start in range(0, len(triples), size):
        yield triples[start:start + size]


# ---------------------------------------------------------------------------
# TaskStatus — release task state machine
# ---------------------------------------------------------------------------

class TaskStatus(Enum):
    """Release task states: READY -> RELEASING -> {SUCCESS, FAILED}.

    FAILED is terminal for the engine; only an operator moves a task back
    to READY.
    """
    READY = "http://kanselarij.vo.data.gift/release-task-statuses/ready-for-release"
    RELEASING = "http://kanselarij.vo.data.gift/release-task-statuses/releasing"
    SUCCESS = "http://kanselarij.vo.data.gift/release-task-statuses/success"
    FAILED = "http://kanselarij.vo.data.gift/release-task-statuses/failed"

    @property
    def uri(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.value.rsplit("/", 1)[-1]

