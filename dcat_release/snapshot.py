"""Snapshot files — immutable exports of the triples a dataset released.

A snapshot is written once, when a dataset is prepared, and read back only
when that dataset is deprecated, to remove exactly its triples from the
public graph. Statements are written one per line in full N-Triples form,
which is valid Turtle. Typed literals go through rdflib, so they are written
in its canonical lexical form ("007"^^xsd:integer becomes "7"). That is the
form a store returns for typed values it has parsed, so the triples read back
match the ones in the public graph.

Snapshot files are addressed as share://<name> in the store; the share://
scheme maps onto the configured share directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from rdflib import Graph

from .terms import triple_from_nodes, triple_to_nodes
from .types import Triple
from .vocab import SHARE_SCHEME

logger = logging.getLogger(__name__)


def write_snapshot(path: Path, triples: Iterable[Triple]) -> int:
    """Write the triples to path and return the file size in bytes."""
    graph = Graph()
    for triple in triples:
        graph.add(triple_to_nodes(triple))

    path.parent.mkdir(parents=True, exist_ok=True)
    graph.serialize(destination=str(path), format="nt", encoding="utf-8")
    size = path.stat().st_size
    logger.info("Wrote snapshot %s with %d triples (%d bytes)", path, len(graph), size)
    return size


def read_snapshot(path: Path) -> list[Triple]:
    graph = Graph()
    graph.parse(str(path), format="turtle")
    logger.info("Read snapshot %s with %d triples", path, len(graph))
    return [triple_from_nodes(t) for t in graph]


def share_uri(path: Path) -> str:
    return f"{SHARE_SCHEME}{path.name}"


def share_path(uri: str, share_dir: Path) -> Path:
    if not uri.startswith(SHARE_SCHEME):
        raise ValueError(f"Not a share:// URI: {uri}")
    return share_dir / uri[len(SHARE_SCHEME):]
