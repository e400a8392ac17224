"""Tests for the term codec: escaping, literal encoding and JSON decoding."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging
from datetime import datetime, timedelta, timezone

import pytest
from rdflib import BNode, Literal, URIRef

from dcat_release.terms import (
    decode_binding,
    decode_row,
    encode_term,
    encode_triple,
    escape_datetime,
    escape_int,
    escape_string,
    escape_uri,
    from_node,
    node_to_binding,
    now,
    to_node,
)
from dcat_release.types import Term, TermKind, Triple
from dcat_release.vocab import XSD, XSD_STRING


# ---------------------------------------------------------------------------
# Term construction
# ---------------------------------------------------------------------------

class TestTerm:
    def test_xsd_string_datatype_is_dropped(self):
        tagged = Term("literal", "hello", datatype=XSD_STRING)
        assert tagged.datatype is None
        assert tagged == Term.literal("hello")

    def test_other_datatypes_are_kept(self):
        term = Term.literal(3, datatype=XSD.integer)
        assert term.value == "3"
        assert term.datatype == str(XSD.integer)

    def test_string_kind_becomes_enum(self):
        assert Term("uri", "http://a").kind == TermKind.URI
        assert Term("bnode", "b0").kind == TermKind.BNODE

    def test_unknown_kind_is_kept_as_string(self):
        assert Term("weird", "x").kind == "weird"

    def test_terms_are_hashable(self):
        terms = {Term.uri("http://a"), Term.uri("http://a"), Term.literal("a")}
        assert len(terms) == 2


# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------

class TestEscaping:
    def test_uri(self):
        assert escape_uri("http://example.org/a") == "<http://example.org/a>"

    def test_uri_with_forbidden_characters(self):
        assert escape_uri("http://example.org/a b>") == "<http://example.org/a%20b%3E>"

    def test_rewritten_uri_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dcat_release.terms"):
            escape_uri("http://example.org/a b")
        assert "http://example.org/a b" in caplog.text
        assert "a%20b" in caplog.text

    def test_plain_uri_is_not_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dcat_release.terms"):
            escape_uri("http://example.org/a?b=c#d")
        assert caplog.text == ""

    def test_string_quotes_and_newlines(self):
        assert escape_string('say "hi"\nbye') == '"say \\"hi\\"\\nbye"'

    def test_string_backslash(self):
        assert escape_string("a\\b") == '"a\\\\b"'

    def test_datetime(self):
        value = datetime(2026, 10, 17, 12, 30, tzinfo=timezone.utc)
        assert escape_datetime(value) == (
            '"2026-10-17T12:30:00+00:00"^^<http://www.w3.org/2001/XMLSchema#dateTime>'
        )

    def test_naive_datetime_is_taken_as_utc(self):
        value = datetime(2026, 10, 17, 12, 30)
        assert "+00:00" in escape_datetime(value)

    def test_int(self):
        assert escape_int(42) == '"42"^^<http://www.w3.org/2001/XMLSchema#integer>'

    def test_now_is_utc_without_microseconds(self):
        value = now()
        assert value.tzinfo is not None
        assert value.utcoffset() == timedelta(0)
        assert value.microsecond == 0


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

class TestEncodeTerm:
    def test_uri(self):
        assert encode_term(Term.uri("http://a")) == "<http://a>"

    def test_plain_literal(self):
        assert encode_term(Term.literal("x")) == '"x"'

    def test_xsd_string_literal_written_without_datatype(self):
        assert encode_term(Term("literal", "x", datatype=XSD_STRING)) == '"x"'

    def test_typed_literal(self):
        term = Term.literal("5", datatype=XSD.integer)
        assert encode_term(term) == '"5"^^<http://www.w3.org/2001/XMLSchema#integer>'

    def test_language_literal(self):
        assert encode_term(Term.literal("hallo", language="nl")) == '"hallo"@nl'

    def test_datatype_wins_over_language(self):
        term = Term.literal("5", datatype=XSD.integer, language="nl")
        assert encode_term(term).endswith("^^<http://www.w3.org/2001/XMLSchema#integer>")

    def test_unknown_kind_written_as_string_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dcat_release.terms"):
            encoded = encode_term(Term("weird", "x"))
        assert encoded == '"x"'
        assert "weird" in caplog.text

    def test_triple(self):
        triple = Triple(Term.uri("http://s"), Term.uri("http://p"), Term.literal("o"))
        assert encode_triple(triple) == '<http://s> <http://p> "o" .'


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

class TestDecodeBinding:
    def test_uri(self):
        assert decode_binding({"type": "uri", "value": "http://a"}) == Term.uri("http://a")

    def test_literal_with_language(self):
        term = decode_binding({"type": "literal", "value": "hallo", "xml:lang": "nl"})
        assert term.language == "nl"

    def test_typed_literal_spelling(self):
        term = decode_binding({
            "type": "typed-literal",
            "value": "5",
            "datatype": str(XSD.integer),
        })
        assert term.kind == TermKind.LITERAL
        assert term.datatype == str(XSD.integer)

    def test_xsd_string_binding_equals_plain(self):
        tagged = decode_binding({"type": "literal", "value": "x", "datatype": XSD_STRING})
        plain = decode_binding({"type": "literal", "value": "x"})
        assert tagged == plain

    def test_row_with_default_names(self):
        row = {
            "s": {"type": "uri", "value": "http://s"},
            "p": {"type": "uri", "value": "http://p"},
            "o": {"type": "literal", "value": "o"},
        }
        assert decode_row(row) == Triple(Term.uri("http://s"), Term.uri("http://p"), Term.literal("o"))

    def test_row_with_custom_names(self):
        row = {
            "a": {"type": "uri", "value": "http://s"},
            "b": {"type": "uri", "value": "http://p"},
            "c": {"type": "uri", "value": "http://o"},
        }
        assert decode_row(row, "a", "b", "c").object == Term.uri("http://o")


# ---------------------------------------------------------------------------
# rdflib nodes
# ---------------------------------------------------------------------------

class TestNodes:
    def test_node_to_binding_literal(self):
        binding = node_to_binding(Literal("5", datatype=XSD.integer))
        assert binding == {"type": "literal", "value": "5", "datatype": str(XSD.integer)}

    def test_node_to_binding_bnode(self):
        assert node_to_binding(BNode("b1"))["type"] == "bnode"

    def test_node_to_binding_rejects_other_values(self):
        with pytest.raises(TypeError):
            node_to_binding("not a node")

    def test_to_node(self):
        assert to_node(Term.uri("http://a")) == URIRef("http://a")
        assert to_node(Term.literal("hallo", language="nl")) == Literal("hallo", lang="nl")

    def test_from_node_drops_xsd_string(self):
        assert from_node(Literal("x", datatype=XSD.string)) == Term.literal("x")
