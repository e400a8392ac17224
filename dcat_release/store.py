"""Store transport — SPARQL select/update against a triplestore.

Two implementations share the TripleStore interface:

  SparqlEndpointStore — SPARQL 1.1 Protocol over HTTP (httpx)
  MemoryStore         — an rdflib Dataset evaluating the same SPARQL in-process

Both return SELECT results as SPARQL 1.1 JSON bindings, so the rest of the
pipeline never depends on which one is in use.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

import httpx
from rdflib import Dataset, Literal, URIRef

from .config import Settings
from .terms import node_to_binding, triple_from_nodes, triple_to_nodes
from .types import Triple
from .vocab import XSD

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A query or update could not be executed by the store."""


class TripleStore(Protocol):
    def select(self, query: str) -> list[dict]:
        """Run a SELECT and return its result rows as JSON bindings."""
        ...

    def update(self, statement: str) -> None:
        """Run a SPARQL update."""
        ...


# ---------------------------------------------------------------------------
# HTTP endpoint
# ---------------------------------------------------------------------------

class SparqlEndpointStore:
    """SPARQL 1.1 Protocol client.

    Queries and updates are posted form-encoded. With `sudo` set, requests
    carry the mu-auth-sudo header so they bypass the authorization layer of
    a mu-semtech stack.
    """

    def __init__(
        self,
        endpoint: str,
        update_endpoint: str | None = None,
        sudo: bool = False,
        timeout: float = 300.0,
        client: httpx.Client | None = None,
    ):
        self.endpoint = endpoint
        self.update_endpoint = update_endpoint or endpoint
        headers = {"mu-auth-sudo": "true"} if sudo else {}
        self.client = client or httpx.Client(timeout=timeout)
        self.headers = headers

    @classmethod
    def from_settings(cls, settings: Settings) -> SparqlEndpointStore:
        return cls(
            settings.sparql_endpoint,
            update_endpoint=settings.sparql_update_endpoint,
            sudo=settings.sparql_sudo,
            timeout=settings.request_timeout,
        )

    def select(self, query: str) -> list[dict]:
        response = self._post(
            self.endpoint,
            {"query": query},
            {"Accept": "application/sparql-results+json"},
        )
        try:
            return response.json()["results"]["bindings"]
        except (ValueError, KeyError) as e:
            raise StoreError(f"Unexpected response to query: {e}") from e

    def update(self, statement: str) -> None:
        self._post(self.update_endpoint, {"update": statement}, {})

    def _post(self, url: str, data: dict, headers: dict) -> httpx.Response:
        try:
            response = self.client.post(url, data=data, headers={**self.headers, **headers})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Store returned %s for %s", e.response.status_code, url)
            raise StoreError(
                f"{e.response.status_code} from {url}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Request to {url} failed: {e}") from e
        return response

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> SparqlEndpointStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ---------------------------------------------------------------------------
# In-process store
# ---------------------------------------------------------------------------

class MemoryStore:
    """A TripleStore over an rdflib Dataset of named graphs.

    Like the triplestores it stands in for, it keeps no difference between
    "x"^^xsd:string and "x": tagged strings are stored plain.
    """

    def __init__(self, dataset: Dataset | None = None):
        self.dataset = dataset if dataset is not None else Dataset()

    def select(self, query: str) -> list[dict]:
        result = self.dataset.query(query)
        return [
            {str(var): node_to_binding(value) for var, value in row.items() if value is not None}
            for row in result.bindings
        ]

    def update(self, statement: str) -> None:
        self.dataset.update(statement)
        self._normalize_strings()

    # -----------------------------------------------------------------------
    # Direct graph access
    # -----------------------------------------------------------------------

    def add(self, graph: str, triples: Iterable[Triple]) -> None:
        g = self.dataset.graph(URIRef(graph))
        for triple in triples:
            g.add(triple_to_nodes(triple))
        self._normalize_strings()

    def triples(self, graph: str) -> set[Triple]:
        g = self.dataset.graph(URIRef(graph))
        return {triple_from_nodes(t) for t in g}

    def _normalize_strings(self) -> None:
        for g in list(self.dataset.graphs()):
            tagged = [
                (s, p, o) for s, p, o in g
                if isinstance(o, Literal) and o.datatype == XSD.string
            ]
            for s, p, o in tagged:
                g.remove((s, p, o))
                g.add((s, p, Literal(str(o))))

    def __repr__(self) -> str:
        graphs = [g for g in self.dataset.graphs() if len(g)]
        return f"MemoryStore({len(graphs)} graphs)"
