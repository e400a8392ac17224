"""RDF vocabulary used by the release pipeline.

Namespaces that rdflib ships (DCAT, DCTERMS, RDF, XSD) are re-exported
so that every module takes its terms from one place.
"""

from __future__ import annotations

from rdflib import Namespace, URIRef
from rdflib.namespace import DCAT, DCTERMS, RDF, XSD

ADMS = Namespace("http://www.w3.org/ns/adms#")
MU = Namespace("http://mu.semte.ch/vocabularies/core/")
EXT = Namespace("http://mu.semte.ch/vocabularies/ext/")
NFO = Namespace("http://www.semanticdesktop.org/ontologies/2007/03/22/nfo#")
NIE = Namespace("http://www.semanticdesktop.org/ontologies/2007/01/19/nie#")
NMO = Namespace("http://www.semanticdesktop.org/ontologies/2007/03/22/nmo#")
BESLUIT = Namespace("http://data.vlaanderen.be/ns/besluit#")
DBPEDIA = Namespace("http://dbpedia.org/ontology/")
# rdflib's closed PROV namespace lacks prov:revisionOf
PROV = Namespace("http://www.w3.org/ns/prov#")

XSD_STRING = str(XSD.string)

# Distribution types
ATTACHMENT_DISTRIBUTION = URIRef(
    "http://themis.vlaanderen.be/id/concept/distribution-type/c4d99dde-3df9-4da1-8136-9a3b2de82de4"
)
SNAPSHOT_DISTRIBUTION = URIRef(
    "http://themis.vlaanderen.be/id/concept/distribution-type/dd5bfc23-8f88-4df5-80f6-a9f72e08d7c4"
)

SERVICE_URI = URIRef("http://themis.vlaanderen.be/id/service/dcat-dataset-publication-service")

SNAPSHOT_FORMAT = "text/turtle"
SHARE_SCHEME = "share://"

PREFIXES = {
    "adms": ADMS,
    "dbpedia": DBPEDIA,
    "besluit": BESLUIT,
    "dcat": DCAT,
    "dct": DCTERMS,
    "ext": EXT,
    "mu": MU,
    "nfo": NFO,
    "nie": NIE,
    "nmo": NMO,
    "prov": PROV,
    "rdf": RDF,
    "xsd": XSD,
}


def prefixes(*names: str) -> str:
    """Render SPARQL PREFIX declarations for the given prefix names."""
    return "\n".join(f"PREFIX {name}: <{PREFIXES[name]}>" for name in names)
