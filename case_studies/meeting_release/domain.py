"""Meeting release — staging data for a government meeting ("kort bestek").

A meeting (besluit:Vergaderactiviteit) is published together with its
agenda items, news items and attached documents. Each publication of the
same meeting is a new dataset revision that supersedes the previous one.

Builders here produce the triples an upstream producer would put in a
staging graph, and the release task that points at it.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

from dataclasses import dataclass, field
from datetime import datetime, timezone

from dcat_release.store import MemoryStore
from dcat_release.terms import escape_datetime, escape_uri
from dcat_release.types import TaskStatus, Term, Triple
from dcat_release.vocab import BESLUIT, DCTERMS, EXT, MU, NFO, NIE, RDF, XSD, prefixes

BASE = "http://themis.vlaanderen.be/id"


def _t(s: str, p, o: Term) -> Triple:
    return Triple(Term.uri(s), Term.uri(str(p)), o)


@dataclass
class Attachment:
    name: str
    uuid: str
    size: int
    format: str = "application/pdf"


@dataclass
class Meeting:
    """A meeting as the staging graph describes it."""
    id: str
    start: datetime
    agenda_items: list[str] = field(default_factory=list)
    news_items: list[str] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def uri(self) -> str:
        return f"{BASE}/vergaderactiviteit/{self.id}"

    def triples(self) -> list[Triple]:
        start = Term.literal(self.start.isoformat(), datatype=XSD.dateTime)
        triples = [
            _t(self.uri, RDF.type, Term.uri(str(BESLUIT.Vergaderactiviteit))),
            _t(self.uri, MU.uuid, Term.literal(self.id)),
            _t(self.uri, BESLUIT.geplandeStart, start),
        ]
        for i, title in enumerate(self.agenda_items):
            item = f"{BASE}/agendapunt/{self.id}-{i}"
            triples += [
                _t(item, RDF.type, Term.uri(str(BESLUIT.Agendapunt))),
                _t(item, DCTERMS.title, Term.literal(title, language="nl")),
                _t(item, BESLUIT.volgnummer, Term.literal(i + 1, datatype=XSD.integer)),
                _t(self.uri, BESLUIT.behandelt, Term.uri(item)),
            ]
        for i, text in enumerate(self.news_items):
            news = f"{BASE}/nieuwsbericht/{self.id}-{i}"
            triples += [
                _t(news, RDF.type, Term.uri(str(EXT.Nieuwsbericht))),
                _t(news, DCTERMS.title, Term.literal(text)),
                _t(news, DCTERMS.subject, Term.uri(self.uri)),
            ]
        for attachment in self.attachments:
            logical = f"{BASE}/file/{attachment.uuid}"
            physical = f"share://{attachment.uuid}.pdf"
            triples += [
                _t(logical, RDF.type, Term.uri(str(NFO.FileDataObject))),
                _t(logical, MU.uuid, Term.literal(attachment.uuid)),
                _t(logical, NFO.fileName, Term.literal(attachment.name)),
                _t(logical, NFO.fileSize, Term.literal(attachment.size, datatype=XSD.integer)),
                _t(logical, DCTERMS["format"], Term.literal(attachment.format)),
                _t(physical, RDF.type, Term.uri(str(NFO.FileDataObject))),
                _t(physical, NIE.dataSource, Term.uri(logical)),
            ]
        return triples


def build_meeting(revision: int = 1) -> Meeting:
    """The council meeting of 17 October; later revisions add content."""
    meeting = Meeting(
        id="5f1c2a",
        start=datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc),
        agenda_items=["Goedkeuring verslag", "Begroting 2027"],
        news_items=["De regering keurt de begroting goed"],
        attachments=[Attachment("beslissing.pdf", "a1b2c3", 52340)],
    )
    if revision >= 2:
        meeting.agenda_items.append("Mobiliteitsplan")
        meeting.news_items = ["De regering keurt de begroting en het mobiliteitsplan goed"]
        meeting.attachments.append(Attachment("mobiliteitsplan.pdf", "d4e5f6", 120800))
    return meeting


def stage(store: MemoryStore, graph: str, meeting: Meeting) -> None:
    """Put the meeting's triples in a staging graph."""
    store.add(graph, meeting.triples())


def schedule_task(
    store: MemoryStore,
    task_graph: str,
    task_uri: str,
    source: str,
    created: datetime,
    status: TaskStatus = TaskStatus.READY,
) -> None:
    """Insert a release task the way the upstream producer does."""
    store.update(f"""
        {prefixes("ext", "adms", "dct", "mu")}
        INSERT DATA {{
          GRAPH {escape_uri(task_graph)} {{
            {escape_uri(task_uri)} a ext:ReleaseTask ;
              mu:uuid "{task_uri.rsplit('/', 1)[-1]}" ;
              dct:source {escape_uri(source)} ;
              dct:created {escape_datetime(created)} ;
              adms:status {escape_uri(status.uri)} .
          }}
        }}
    """)
