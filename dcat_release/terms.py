"""Term codec — typed RDF terms to and from the store's wire syntax.

Three representations meet here:

  SPARQL text        — what INSERT DATA / DELETE DATA statements contain
  SPARQL JSON        — what a SELECT returns (results.bindings[*][var])
  rdflib nodes       — what snapshot files are parsed into and written from

URI rule: a URI is written as-is. Characters an IRIREF cannot contain are
percent-encoded and the rewrite is logged, since the store then holds a
different URI than the one it was given.

Literal rule: a datatype is written only when present and not xsd:string,
otherwise a language tag when present, otherwise nothing. Terms of any other
kind are written as plain strings and logged; that is an anomaly in the
data, not a failure of the release.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from rdflib import BNode, Literal, URIRef
from rdflib.term import Node

from .types import Term, TermKind, Triple
from .vocab import XSD

logger = logging.getLogger(__name__)

# Characters not allowed inside an IRIREF, percent-encoded on output
_IRI_ESCAPES = {c: f"%{ord(c):02X}" for c in '<>"{}|^`\\ '}

_STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


# ---------------------------------------------------------------------------
# Escaping helpers
# ---------------------------------------------------------------------------

def escape_uri(value: str) -> str:
    """Write a URI reference as-is, percent-encoding what an IRIREF cannot hold."""
    value = str(value)
    escaped = "".join(_IRI_ESCAPES.get(c, c) for c in value)
    if escaped != value:
        logger.warning("URI %r contains characters not allowed in SPARQL, written as %r", value, escaped)
    return f"<{escaped}>"


def escape_string(value: str) -> str:
    return '"' + "".join(_STRING_ESCAPES.get(c, c) for c in str(value)) + '"'


def escape_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return f"{escape_string(value.isoformat())}^^{escape_uri(XSD.dateTime)}"


def escape_int(value: int) -> str:
    return f"{escape_string(str(int(value)))}^^{escape_uri(XSD.integer)}"


def now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Term -> SPARQL text
# ---------------------------------------------------------------------------

def encode_term(term: Term) -> str:
    if term.kind == TermKind.URI:
        return escape_uri(term.value)
    if term.kind == TermKind.LITERAL:
        if term.datatype:
            return f"{escape_string(term.value)}^^{escape_uri(term.datatype)}"
        if term.language:
            return f"{escape_string(term.value)}@{term.language}"
        return escape_string(term.value)
    kind = term.kind.value if isinstance(term.kind, TermKind) else term.kind
    logger.warning("Don't know how to escape term of kind %r. Will escape as a string.", kind)
    return escape_string(term.value)


def encode_triple(triple: Triple) -> str:
    return " ".join(encode_term(t) for t in triple) + " ."


def encode_triples(triples: Iterable[Triple]) -> str:
    return "\n".join(encode_triple(t) for t in triples)


# ---------------------------------------------------------------------------
# SPARQL JSON bindings -> Term
# ---------------------------------------------------------------------------

def decode_binding(binding: dict) -> Term:
    """Build a Term from one SPARQL 1.1 JSON result binding.

    Virtuoso reports typed literals as "typed-literal"; both spellings map to
    a literal.
    """
    kind = binding["type"]
    if kind == "typed-literal":
        kind = TermKind.LITERAL.value
    return Term(
        kind,
        binding["value"],
        datatype=binding.get("datatype"),
        language=binding.get("xml:lang"),
    )


def decode_row(row: dict, *names: str) -> Triple:
    """Build a Triple from a row binding subject/predicate/object variables."""
    subject, predicate, obj = names or ("s", "p", "o")
    return Triple(
        decode_binding(row[subject]),
        decode_binding(row[predicate]),
        decode_binding(row[obj]),
    )


def node_to_binding(node: Node) -> dict:
    """Inverse of decode_binding for rdflib nodes (used by the memory store)."""
    if isinstance(node, URIRef):
        return {"type": "uri", "value": str(node)}
    if isinstance(node, BNode):
        return {"type": "bnode", "value": str(node)}
    if isinstance(node, Literal):
        binding = {"type": "literal", "value": str(node)}
        if node.datatype is not None:
            binding["datatype"] = str(node.datatype)
        if node.language:
            binding["xml:lang"] = node.language
        return binding
    raise TypeError(f"Cannot bind {node!r}")


# ---------------------------------------------------------------------------
# Term <-> rdflib nodes
# ---------------------------------------------------------------------------

def to_node(term: Term) -> Node:
    if term.kind == TermKind.URI:
        return URIRef(term.value)
    if term.kind == TermKind.BNODE:
        return BNode(term.value)
    if term.kind == TermKind.LITERAL:
        if term.datatype:
            return Literal(term.value, datatype=URIRef(term.datatype))
        return Literal(term.value, lang=term.language)
    logger.warning("Don't know how to convert term of kind %r. Will convert to a string.", term.kind)
    return Literal(term.value)


def from_node(node: Node) -> Term:
    if isinstance(node, URIRef):
        return Term.uri(node)
    if isinstance(node, BNode):
        return Term(TermKind.BNODE, str(node))
    if isinstance(node, Literal):
        return Term.literal(str(node), datatype=node.datatype, language=node.language)
    raise TypeError(f"Cannot convert {node!r} to a term")


def triple_to_nodes(triple: Triple) -> tuple[Node, Node, Node]:
    return (to_node(triple.subject), to_node(triple.predicate), to_node(triple.object))


def triple_from_nodes(nodes: tuple[Node, Node, Node]) -> Triple:
    s, p, o = nodes
    return Triple(from_node(s), from_node(p), from_node(o))
