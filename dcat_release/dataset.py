"""Dataset revisioning — from staging graph to published, versioned dataset.

A release of one staging graph goes through three steps:

  prepare()             describe the dataset inside the staging graph:
                          1. the dcat:Dataset record for the meeting it covers
                          2. the snapshot file of the staged content
                          3. one distribution per attached file
                          4. one distribution for the snapshot file
  deprecate_previous()  find the current head of the revision chain for the
                        same subject, link the new dataset to it with
                        prov:revisionOf, strip its download URLs, and remove
                        exactly its snapshot's triples from the public graph
  release()             move the staging graph into the public graph, the
                        dataset record last

Everything is written to the staging graph until release(), so the public
graph never holds a partially described dataset.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from uuid import uuid4

from .config import Settings
from .record import require_complete_record
from .snapshot import read_snapshot, share_path, share_uri, write_snapshot
from .store import TripleStore
from .terms import decode_binding, decode_row, escape_datetime, escape_uri, now
from .transfer import GraphTransfer
from .types import Term, Triple
from .vocab import (
    ATTACHMENT_DISTRIBUTION,
    DBPEDIA,
    DCAT,
    DCTERMS,
    MU,
    NFO,
    NIE,
    PROV,
    RDF,
    SERVICE_URI,
    SNAPSHOT_DISTRIBUTION,
    SNAPSHOT_FORMAT,
    XSD,
    prefixes,
)

logger = logging.getLogger(__name__)

TITLE_PREFIX = "Vergaderactiviteit in kort bestek"


class DatasetError(RuntimeError):
    """The staging graph cannot be turned into a dataset."""


def _uri(value: object) -> Term:
    return Term.uri(str(value))


def _triple(subject: object, predicate: object, obj: Term) -> Triple:
    return Triple(_uri(subject), _uri(predicate), obj)


def _timestamp(value: datetime) -> Term:
    return Term.literal(value.isoformat(), datatype=XSD.dateTime)


def _int(value: int) -> Term:
    return Term.literal(int(value), datatype=XSD.integer)


class Dataset:
    """One release of a staging graph as a DCAT dataset."""

    def __init__(
        self,
        graph: str,
        store: TripleStore,
        settings: Settings,
        transfer: GraphTransfer | None = None,
        clock: Callable[[], datetime] = now,
    ):
        self.graph = graph
        self.store = store
        self.settings = settings
        self.transfer = transfer or GraphTransfer.from_settings(store, settings)
        self.clock = clock

        self.uuid = str(uuid4())
        self.uri = f"{settings.resource_base_uri}/id/dataset/{self.uuid}"
        self.file_path: Path = settings.share_dir / f"{uuid4()}.ttl"

        self.subject: str | None = None
        self.title: str | None = None
        self.previous: str | None = None

    def __repr__(self) -> str:
        return f"Dataset(<{self.uri}> from <{self.graph}>)"

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def prepare(self) -> None:
        self.discard_earlier_attempt()
        self.generate_dataset()
        self.generate_snapshot()
        self.generate_attachment_distributions()
        self.generate_snapshot_distribution()

    def deprecate_previous(self) -> str | None:
        """Deprecate the active dataset for the same subject, if any.

        Returns the URI of the deprecated dataset, or None.
        """
        previous = self.find_previous()
        if previous is None:
            logger.info("No previous dataset found for <%s>", self.subject)
            return None

        logger.info("Found previous dataset <%s>", previous)
        self.previous = previous
        self.transfer.insert_batch(
            [_triple(self.uri, PROV.revisionOf, _uri(previous))], self.graph
        )
        self.deprecate_distributions(previous)
        self.remove_deprecated_triples(previous)
        return previous

    def release(self) -> int:
        """Publish the staging graph and clear it. Returns triples moved."""
        return self.transfer.move_graph(
            self.graph,
            self.settings.public_graph,
            inspect=lambda triples: require_complete_record(triples, self.uri),
            last_subject=self.uri,
        )

    # -----------------------------------------------------------------------
    # prepare() steps
    # -----------------------------------------------------------------------

    def discard_earlier_attempt(self) -> None:
        """Remove what a failed release of this staging graph left behind.

        A task reset to READY after a failure finds its staging graph still
        holding the dataset record, its distributions and the snapshot file
        description of the earlier attempt. The staged content itself and the
        attached files are kept; the old snapshot file stays on disk.
        """
        snapshot = escape_uri(SNAPSHOT_DISTRIBUTION)
        rows = self.store.select(f"""
            {prefixes("dcat", "dct", "nie")}
            SELECT DISTINCT ?s ?p ?o
            WHERE {{
              GRAPH {escape_uri(self.graph)} {{
                {{ ?s a dcat:Dataset . }}
                UNION
                {{ ?dataset a dcat:Dataset ; dcat:distribution ?s . }}
                UNION
                {{
                  ?dataset a dcat:Dataset ; dcat:distribution ?distribution .
                  ?distribution dct:type {snapshot} ; dct:subject ?s .
                }}
                UNION
                {{
                  ?dataset a dcat:Dataset ; dcat:distribution ?distribution .
                  ?distribution dct:type {snapshot} ; dct:subject ?file .
                  ?file nie:dataSource ?s .
                }}
                ?s ?p ?o .
              }}
            }}
        """)
        if not rows:
            return
        logger.warning(
            "Staging graph <%s> still holds %d triples of an earlier release attempt, removing them",
            self.graph, len(rows),
        )
        self.transfer.delete_triples([decode_row(row) for row in rows], self.graph)

    def generate_dataset(self) -> None:
        rows = self.store.select(f"""
            {prefixes("besluit")}
            SELECT ?subject ?start
            WHERE {{
              GRAPH {escape_uri(self.graph)} {{
                ?subject a {escape_uri(self.settings.subject_type)} ;
                  besluit:geplandeStart ?start .
              }}
            }}
            ORDER BY ?subject
        """)
        if not rows:
            raise DatasetError(
                f"No <{self.settings.subject_type}> with a planned start in <{self.graph}>"
            )
        if len(rows) > 1:
            logger.warning(
                "Found %d candidate subjects in <%s>, using the first", len(rows), self.graph
            )

        self.subject = rows[0]["subject"]["value"]
        start = rows[0]["start"]["value"]
        self.title = f"{TITLE_PREFIX} {start}"
        ts = _timestamp(self.clock())

        self.transfer.insert_batch([
            _triple(self.uri, RDF.type, _uri(DCAT.Dataset)),
            _triple(self.uri, MU.uuid, Term.literal(self.uuid)),
            _triple(self.uri, DCTERMS.type, _uri(self.settings.dataset_type)),
            _triple(self.uri, DCAT.catalog, _uri(self.settings.catalog_uri)),
            _triple(self.uri, DCTERMS.subject, _uri(self.subject)),
            _triple(self.uri, DCTERMS.created, ts),
            _triple(self.uri, DCTERMS.modified, ts),
            _triple(self.uri, DCTERMS.issued, ts),
            _triple(self.uri, DCTERMS.title, Term.literal(self.title)),
        ], self.graph)
        logger.info("Generated dataset <%s> for <%s>", self.uri, self.subject)

    def generate_snapshot(self) -> None:
        """Write the staged content to the snapshot file.

        The dataset's own record is left out: deprecating this dataset later
        removes the snapshot's triples, and the record must survive that.
        """
        logger.info("Generate snapshot file %s with dataset triples", self.file_path)
        triples = [t for t in self.transfer.fetch_all(self.graph) if t.subject.value != self.uri]
        write_snapshot(self.file_path, triples)

    def generate_attachment_distributions(self) -> None:
        logger.info("Generate distributions for the attachments")
        rows = self.store.select(f"""
            {prefixes("nfo", "nie", "mu", "dct")}
            SELECT ?file ?logicalFileUuid ?format ?byteSize ?title
            WHERE {{
              GRAPH {escape_uri(self.graph)} {{
                ?file a nfo:FileDataObject ;
                  nie:dataSource ?logicalFile .
                ?logicalFile mu:uuid ?logicalFileUuid .
                OPTIONAL {{ ?logicalFile dct:format ?format }}
                OPTIONAL {{ ?logicalFile nfo:fileSize ?byteSize }}
                OPTIONAL {{ ?logicalFile nfo:fileName ?title }}
              }}
            }}
            ORDER BY ?file
        """)
        ts = _timestamp(self.clock())
        triples: list[Triple] = []
        for row in rows:
            uuid = str(uuid4())
            distribution = f"{self.settings.resource_base_uri}/id/distribution/{uuid}"
            download = self._download_url(row["logicalFileUuid"]["value"])
            triples += [
                _triple(distribution, RDF.type, _uri(DCAT.Distribution)),
                _triple(distribution, MU.uuid, Term.literal(uuid)),
                _triple(distribution, DCTERMS.type, _uri(ATTACHMENT_DISTRIBUTION)),
                _triple(distribution, DCTERMS.subject, decode_binding(row["file"])),
                _triple(distribution, DCTERMS.created, ts),
                _triple(distribution, DCTERMS.modified, ts),
                _triple(distribution, DCTERMS.issued, ts),
                _triple(distribution, DCAT.downloadURL, _uri(download)),
                _triple(self.uri, DCAT.distribution, _uri(distribution)),
            ]
            for var, predicate in (
                ("format", DCTERMS["format"]),
                ("byteSize", DCAT.byteSize),
                ("title", DCTERMS.title),
            ):
                if var in row:
                    triples.append(_triple(distribution, predicate, decode_binding(row[var])))

        self.transfer.insert_batch(triples, self.graph)
        logger.info("Generated %d attachment distributions", len(rows))

    def generate_snapshot_distribution(self) -> None:
        """Describe the snapshot file and add its distribution.

        Size and creation time come from the file as written.
        """
        stat = self.file_path.stat()
        size = stat.st_size
        created = _timestamp(datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc))
        file_name = self.file_path.name
        extension = self.file_path.suffix
        ts = _timestamp(self.clock())

        logical_uuid = str(uuid4())
        logical = f"{self.settings.resource_base_uri}/id/file/{logical_uuid}"
        physical_uuid = str(uuid4())
        physical = share_uri(self.file_path)
        distribution_uuid = str(uuid4())
        distribution = f"{self.settings.resource_base_uri}/id/distribution/{distribution_uuid}"

        file_metadata = [
            (NFO.fileName, Term.literal(file_name)),
            (DCTERMS["format"], Term.literal(SNAPSHOT_FORMAT)),
            (NFO.fileSize, _int(size)),
            (DBPEDIA.fileExtension, Term.literal(extension)),
            (DCTERMS.created, created),
        ]
        triples = [
            _triple(logical, RDF.type, _uri(NFO.FileDataObject)),
            _triple(logical, MU.uuid, Term.literal(logical_uuid)),
            _triple(logical, DCTERMS.creator, _uri(SERVICE_URI)),
            _triple(physical, RDF.type, _uri(NFO.FileDataObject)),
            _triple(physical, MU.uuid, Term.literal(physical_uuid)),
            _triple(physical, NIE.dataSource, _uri(logical)),
        ]
        for predicate, value in file_metadata:
            triples.append(_triple(logical, predicate, value))
            triples.append(_triple(physical, predicate, value))

        triples += [
            _triple(distribution, RDF.type, _uri(DCAT.Distribution)),
            _triple(distribution, MU.uuid, Term.literal(distribution_uuid)),
            _triple(distribution, DCTERMS.type, _uri(SNAPSHOT_DISTRIBUTION)),
            _triple(distribution, DCTERMS.subject, _uri(physical)),
            _triple(distribution, DCTERMS.created, ts),
            _triple(distribution, DCTERMS.modified, ts),
            _triple(distribution, DCTERMS.issued, ts),
            _triple(distribution, DCAT.downloadURL, _uri(self._download_url(logical_uuid))),
            _triple(distribution, DCAT.byteSize, _int(size)),
            _triple(distribution, DCTERMS["format"], Term.literal(SNAPSHOT_FORMAT)),
            _triple(distribution, DCTERMS.title, Term.literal(self.title or file_name)),
            _triple(self.uri, DCAT.distribution, _uri(distribution)),
        ]
        self.transfer.insert_batch(triples, self.graph)
        logger.info("Generated snapshot distribution <%s> (%d bytes)", distribution, size)

    def _download_url(self, logical_file_uuid: str) -> str:
        return f"{self.settings.host_domain}/files/{logical_file_uuid}/download"

    # -----------------------------------------------------------------------
    # deprecate_previous() steps
    # -----------------------------------------------------------------------

    def find_previous(self) -> str | None:
        """The head of the revision chain for this dataset's subject."""
        if self.subject is None:
            raise DatasetError("Dataset must be prepared before deprecating its predecessor")

        rows = self.store.select(f"""
            {prefixes("dcat", "dct", "prov")}
            SELECT ?dataset ?created
            WHERE {{
              GRAPH {escape_uri(self.settings.public_graph)} {{
                ?dataset a dcat:Dataset ;
                  dct:subject {escape_uri(self.subject)} .
                OPTIONAL {{ ?dataset dct:created ?created }}
                FILTER NOT EXISTS {{ ?newerVersion prov:revisionOf ?dataset . }}
              }}
            }}
            ORDER BY DESC(?created)
        """)
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "Found %d active datasets for <%s>, deprecating the most recent",
                len(rows), self.subject,
            )
        return rows[0]["dataset"]["value"]

    def deprecate_distributions(self, previous: str) -> None:
        """Strip download URLs of the previous dataset and bump modified dates."""
        logger.info("Deprecating distributions belonging to previous dataset <%s>", previous)
        public = escape_uri(self.settings.public_graph)
        self.store.update(f"""
            {prefixes("dcat")}
            DELETE {{
              GRAPH {public} {{
                ?distribution dcat:downloadURL ?downloadURL .
              }}
            }}
            WHERE {{
              GRAPH {public} {{
                {escape_uri(previous)} dcat:distribution ?distribution .
                ?distribution dcat:downloadURL ?downloadURL .
              }}
            }}
        """)
        self.store.update(f"""
            {prefixes("dcat", "dct")}
            DELETE {{
              GRAPH {public} {{
                ?resource dct:modified ?modified .
              }}
            }}
            INSERT {{
              GRAPH {public} {{
                ?resource dct:modified {escape_datetime(self.clock())} .
              }}
            }}
            WHERE {{
              GRAPH {public} {{
                {{ BIND({escape_uri(previous)} AS ?resource) }}
                UNION
                {{ {escape_uri(previous)} dcat:distribution ?resource . }}
                OPTIONAL {{ ?resource dct:modified ?modified . }}
              }}
            }}
        """)

    def remove_deprecated_triples(self, previous: str) -> None:
        """Remove exactly the triples of the previous dataset's snapshot.

        The public graph may already hold triples that the new release shares
        with the previous one; only the recorded snapshot is removed, never a
        diff against the live graph.
        """
        logger.info("Removing all triples belonging to previous dataset <%s>", previous)
        rows = self.store.select(f"""
            {prefixes("dcat", "dct")}
            SELECT ?file
            WHERE {{
              GRAPH {escape_uri(self.settings.public_graph)} {{
                {escape_uri(previous)} dcat:distribution ?distribution .
                ?distribution dct:type {escape_uri(SNAPSHOT_DISTRIBUTION)} ;
                  dct:subject ?file .
              }}
            }}
        """)
        if not rows:
            logger.warning("Previous dataset <%s> has no snapshot distribution", previous)
            return

        path = share_path(rows[0]["file"]["value"], self.settings.share_dir)
        if not path.exists():
            raise DatasetError(f"Snapshot file {path} of dataset <{previous}> does not exist")
        triples = read_snapshot(path)
        self.transfer.delete_triples(triples, self.settings.public_graph)
        logger.info("Removed %d snapshot triples of <%s>", len(triples), previous)
