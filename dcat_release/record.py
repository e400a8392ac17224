"""Record check — is a staged DCAT record complete enough to publish?

The dataset record must never be visible in a partial state. Before any
triple of a staging graph is copied to the public graph, the fetched triples
are loaded into an rdflib Graph and validated with pyshacl against shapes
built for the dataset being released:

  DatasetRecordShape       (sh:targetNode <dataset>)
    rdf:type                sh:hasValue dcat:Dataset
    mu:uuid, dct:type, dct:subject, dct:title,
    dct:created, dct:modified, dct:issued
                            sh:minCount 1
    dcat:distribution       sh:minCount 1
    dcat:distribution       exactly one value with dct:type <snapshot>
                            (sh:qualifiedValueShape, min = max = 1)

  DistributionRecordShape  (sh:targetObjectsOf dcat:distribution)
    rdf:type                sh:hasValue dcat:Distribution
    dct:type, dct:subject, dct:modified
                            sh:minCount 1

sh:targetNode applies whether or not the dataset occurs in the data, so an
empty staging graph is reported as incomplete rather than passing.
All problems are collected, not just the first one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from rdflib import BNode, Graph, Literal, URIRef
from rdflib.namespace import SH

from .terms import triple_to_nodes
from .types import Triple
from .vocab import DCAT, DCTERMS, EXT, MU, RDF, SNAPSHOT_DISTRIBUTION

DATASET_SHAPE = EXT["DatasetRecordShape"]
DISTRIBUTION_SHAPE = EXT["DistributionRecordShape"]

_DATASET_PROPERTIES = [
    MU.uuid,
    DCTERMS.type,
    DCTERMS.subject,
    DCTERMS.title,
    DCTERMS.created,
    DCTERMS.modified,
    DCTERMS.issued,
]

_DISTRIBUTION_PROPERTIES = [
    DCTERMS.type,
    DCTERMS.subject,
    DCTERMS.modified,
]


def _local_name(uri: str) -> str:
    return re.split(r"[/#]", uri)[-1] if uri else uri


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RecordProblem:
    """A single gap in the staged record."""
    focus: str
    path: str
    message: str

    def __repr__(self) -> str:
        node = self.focus.split("/")[-1] if "/" in self.focus else self.focus
        return f"RecordProblem({node}.{self.path}: {self.message})"


@dataclass
class RecordCheckResult:
    dataset: str
    problems: list[RecordProblem] = field(default_factory=list)
    results_text: str = ""

    @property
    def complete(self) -> bool:
        return not self.problems

    def summary(self) -> str:
        lines = []
        status = "COMPLETE" if self.complete else "INCOMPLETE"
        lines.append(f"Record <{self.dataset}>: {status}")
        lines.append("-" * 50)
        if self.problems:
            lines.append(f"  Problems ({len(self.problems)}):")
            for p in self.problems:
                node = p.focus.split("/")[-1] if "/" in p.focus else p.focus
                lines.append(f"    - {node}.{p.path}: {p.message}")
        else:
            lines.append("  No problems found.")
        return "\n".join(lines)


class IncompleteRecordError(RuntimeError):
    """The staged record is not fit to be published."""

    def __init__(self, result: RecordCheckResult):
        super().__init__(result.summary())
        self.result = result


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------

def _property(sg: Graph, shape: URIRef, path: URIRef, message: str) -> BNode:
    prop_shape = BNode()
    sg.add((shape, SH.property, prop_shape))
    sg.add((prop_shape, SH.path, path))
    sg.add((prop_shape, SH.name, Literal(_local_name(str(path)))))
    sg.add((prop_shape, SH.message, Literal(message)))
    return prop_shape


def record_shapes(dataset: str) -> Graph:
    """The SHACL shapes a publishable record of `dataset` must conform to."""
    sg = Graph()
    sg.bind("sh", SH)
    sg.bind("ext", EXT)
    sg.bind("dcat", DCAT)
    sg.bind("dct", DCTERMS)

    sg.add((DATASET_SHAPE, RDF.type, SH.NodeShape))
    sg.add((DATASET_SHAPE, SH.targetNode, URIRef(dataset)))

    typed = _property(sg, DATASET_SHAPE, RDF.type, "not typed dcat:Dataset")
    sg.add((typed, SH.hasValue, DCAT.Dataset))
    for predicate in _DATASET_PROPERTIES:
        prop_shape = _property(sg, DATASET_SHAPE, predicate, "missing")
        sg.add((prop_shape, SH.minCount, Literal(1)))

    distributions = _property(sg, DATASET_SHAPE, DCAT.distribution, "dataset has no distributions")
    sg.add((distributions, SH.minCount, Literal(1)))

    snapshots = _property(
        sg, DATASET_SHAPE, DCAT.distribution, "expected exactly one snapshot distribution"
    )
    is_snapshot = BNode()
    sg.add((is_snapshot, SH.path, DCTERMS.type))
    sg.add((is_snapshot, SH.hasValue, SNAPSHOT_DISTRIBUTION))
    sg.add((snapshots, SH.qualifiedValueShape, is_snapshot))
    sg.add((snapshots, SH.qualifiedMinCount, Literal(1)))
    sg.add((snapshots, SH.qualifiedMaxCount, Literal(1)))

    sg.add((DISTRIBUTION_SHAPE, RDF.type, SH.NodeShape))
    sg.add((DISTRIBUTION_SHAPE, SH.targetObjectsOf, DCAT.distribution))

    typed = _property(sg, DISTRIBUTION_SHAPE, RDF.type, "not typed dcat:Distribution")
    sg.add((typed, SH.hasValue, DCAT.Distribution))
    for predicate in _DISTRIBUTION_PROPERTIES:
        prop_shape = _property(sg, DISTRIBUTION_SHAPE, predicate, "missing")
        sg.add((prop_shape, SH.minCount, Literal(1)))

    return sg


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def record_graph(triples: Iterable[Triple]) -> Graph:
    graph = Graph()
    for triple in triples:
        graph.add(triple_to_nodes(triple))
    return graph


def check_record(graph: Graph, dataset: str) -> RecordCheckResult:
    """Validate the record of `dataset` in `graph` against record_shapes()."""
    from pyshacl import validate as pyshacl_validate

    conforms, results_graph, results_text = pyshacl_validate(
        graph,
        shacl_graph=record_shapes(dataset),
        inference="none",
        abort_on_first=False,
    )

    problems = []
    for result in results_graph.subjects(RDF.type, SH.ValidationResult):
        focus = results_graph.value(result, SH.focusNode)
        path = results_graph.value(result, SH.resultPath)
        message = results_graph.value(result, SH.resultMessage)
        problems.append(RecordProblem(
            focus=str(focus) if focus else "",
            path=_local_name(str(path)) if path else "",
            message=str(message) if message else "",
        ))
    problems.sort(key=lambda p: (p.focus != dataset, p.focus, p.path, p.message))

    return RecordCheckResult(dataset=dataset, problems=problems, results_text=results_text)


def require_complete_record(triples: Iterable[Triple], dataset: str) -> None:
    """Raise IncompleteRecordError unless the triples hold a complete record."""
    result = check_record(record_graph(triples), dataset)
    if not result.complete:
        raise IncompleteRecordError(result)
