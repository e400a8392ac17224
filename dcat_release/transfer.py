"""Graph transfer engine — batch-bounded copy, move and delete of triples.

Every operation talks to the store in bounded chunks and strictly in
sequence, so no single request carries more than `update_batch_size`
triples (updates) or `select_batch_size` rows (reads).

move_graph is the composite used to publish a staging graph:

  fetch_all(source) -> insert_batch(target) -> verify_and_repair -> delete_all(source)

The repair step is the correctness backstop for the copy: the store offers
no transactions, and paged reads over a graph can drift. It re-selects what
is in the source but not yet in the target until nothing is left.
"""

from __future__ import annotations

import logging
from typing import Callable

from .config import Settings
from .store import TripleStore
from .terms import decode_row, encode_triples, escape_uri
from .types import Triple, chunked

logger = logging.getLogger(__name__)


class TransferError(RuntimeError):
    """A transfer could not be completed."""


class GraphTransfer:
    def __init__(
        self,
        store: TripleStore,
        update_batch_size: int = 10,
        select_batch_size: int = 1000,
    ):
        self.store = store
        self.update_batch_size = update_batch_size
        self.select_batch_size = select_batch_size

    @classmethod
    def from_settings(cls, store: TripleStore, settings: Settings) -> GraphTransfer:
        return cls(
            store,
            update_batch_size=settings.update_batch_size,
            select_batch_size=settings.select_batch_size,
        )

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def count(self, graph: str) -> int:
        rows = self.store.select(f"""
            SELECT (COUNT(*) AS ?count)
            WHERE {{
              GRAPH {escape_uri(graph)} {{
                ?s ?p ?o .
              }}
            }}
        """)
        return _int(rows)

    def fetch_all(self, graph: str) -> list[Triple]:
        """Read every triple of the graph in pages of select_batch_size.

        Pages are ordered on (?s ?p ?o) so that LIMIT/OFFSET windows are
        stable between requests.
        """
        triples: list[Triple] = []
        count = self.count(graph)
        if count == 0:
            return triples

        logger.info("Parsing 0/%d triples of <%s>", count, graph)
        offset = 0
        while offset < count:
            rows = self.store.select(f"""
                SELECT ?s ?p ?o
                WHERE {{
                  GRAPH {escape_uri(graph)} {{
                    ?s ?p ?o .
                  }}
                }}
                ORDER BY ?s ?p ?o
                LIMIT {self.select_batch_size} OFFSET {offset}
            """)
            triples.extend(decode_row(row) for row in rows)
            offset += self.select_batch_size
            logger.info("Parsed %d/%d triples", min(offset, count), count)
        return triples

    def missing_count(self, source: str, target: str) -> int:
        """Number of triples present in source and absent from target."""
        rows = self.store.select(f"""
            SELECT (COUNT(*) AS ?count)
            WHERE {{
              {_missing_pattern(source, target)}
            }}
        """)
        return _int(rows)

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def insert_batch(self, triples: list[Triple], graph: str) -> None:
        for i, batch in enumerate(chunked(triples, self.update_batch_size)):
            start = i * self.update_batch_size
            logger.debug("Inserting triples in batch: %d-%d", start, start + len(batch))
            self.store.update(f"""
                INSERT DATA {{
                  GRAPH {escape_uri(graph)} {{
                    {encode_triples(batch)}
                  }}
                }}
            """)

    def delete_triples(self, triples: list[Triple], graph: str) -> None:
        """Delete exactly the given triples from the graph, in batches."""
        for i, batch in enumerate(chunked(triples, self.update_batch_size)):
            start = i * self.update_batch_size
            logger.debug("Deleting triples in batch: %d-%d", start, start + len(batch))
            self.store.update(f"""
                DELETE DATA {{
                  GRAPH {escape_uri(graph)} {{
                    {encode_triples(batch)}
                  }}
                }}
            """)

    def delete_all(self, graph: str) -> None:
        """Empty the graph, update_batch_size triples per request.

        Each request deletes an arbitrary selection of the remaining triples,
        so the loop needs no offset: it runs until the count reaches zero.
        """
        remaining = self.count(graph)
        total = remaining
        while remaining > 0:
            logger.debug("Deleting triples from <%s>: %d remaining", graph, remaining)
            self.store.update(f"""
                DELETE {{
                  GRAPH {escape_uri(graph)} {{
                    ?s ?p ?o .
                  }}
                }}
                WHERE {{
                  {{
                    SELECT ?s ?p ?o
                    WHERE {{
                      GRAPH {escape_uri(graph)} {{
                        ?s ?p ?o .
                      }}
                    }}
                    LIMIT {self.update_batch_size}
                  }}
                }}
            """)
            left = self.count(graph)
            if left >= remaining:
                raise TransferError(
                    f"Deleting from <{graph}> made no progress ({left} triples remain)"
                )
            remaining = left
        if total:
            logger.info("Removed %d triples from <%s>", total, graph)

    # -----------------------------------------------------------------------
    # Composite operations
    # -----------------------------------------------------------------------

    def verify_and_repair(self, source: str, target: str) -> int:
        """Copy whatever of source is still missing from target.

        Returns the number of triples repaired; 0 (and no writes) when the
        target is already complete. Each round copies at most
        update_batch_size triples and must shrink the difference.
        """
        missing = self.missing_count(source, target)
        if missing == 0:
            logger.info("Verified: all triples of <%s> are present in <%s>", source, target)
            return 0

        logger.warning(
            "%d triples of <%s> are missing in <%s>. Repairing...", missing, source, target
        )
        repaired = 0
        while missing > 0:
            rows = self.store.select(f"""
                SELECT ?s ?p ?o
                WHERE {{
                  {_missing_pattern(source, target)}
                }}
                LIMIT {self.update_batch_size}
            """)
            batch = [decode_row(row) for row in rows]
            self.insert_batch(batch, target)
            left = self.missing_count(source, target)
            if left >= missing:
                raise TransferError(
                    f"Repair of <{target}> made no progress ({left} triples still missing)"
                )
            repaired += missing - left
            missing = left
        logger.info("Repaired %d triples in <%s>", repaired, target)
        return repaired

    def move_graph(
        self,
        source: str,
        target: str,
        inspect: Callable[[list[Triple]], None] | None = None,
        last_subject: str | None = None,
    ) -> int:
        """Move all triples of source into target and empty source.

        `inspect` sees the fetched triples before anything is written and may
        raise to abort. Triples about `last_subject` are inserted after all
        others. Returns the number of triples moved.
        """
        triples = self.fetch_all(source)
        if inspect is not None:
            inspect(triples)
        if last_subject is not None:
            triples = _subject_last(triples, last_subject)

        logger.info("Copying %d triples from <%s> to <%s>", len(triples), source, target)
        self.insert_batch(triples, target)
        self.verify_and_repair(source, target)
        logger.info("Removing triples from source graph <%s>", source)
        self.delete_all(source)
        return len(triples)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _missing_pattern(source: str, target: str) -> str:
    return f"""
              GRAPH {escape_uri(source)} {{
                ?s ?p ?o .
              }}
              FILTER NOT EXISTS {{
                GRAPH {escape_uri(target)} {{
                  ?s ?p ?o .
                }}
              }}"""


def _int(rows: list[dict]) -> int:
    return int(rows[0]["count"]["value"]) if rows else 0


def _subject_last(triples: list[Triple], subject: str) -> list[Triple]:
    first = [t for t in triples if t.subject.value != subject]
    last = [t for t in triples if t.subject.value == subject]
    return first + last
