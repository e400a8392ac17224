"""DCAT release pipeline — ordered publication of versioned datasets.

Release tasks point at staging graphs. Each task is released in creation
order, one at a time, into the public graph as a DCAT dataset that
supersedes the previous dataset for the same subject:

- Term codec (dcat_release.terms): RDF terms to and from SPARQL syntax
- Store (dcat_release.store): SPARQL select/update over HTTP or in memory
- Graph transfer (dcat_release.transfer): batch-bounded count, fetch,
  insert, delete, move, and verify-and-repair of named graphs
- Dataset revisioning (dcat_release.dataset): prepare the DCAT record and
  snapshot, deprecate the previous revision, release
- Record check (dcat_release.record): SHACL validation of the staged
  record with pyshacl before anything becomes public
- Release queue (dcat_release.tasks): task selection, execution, and the
  single worker thread that starts releases

A failed task blocks the queue until an operator resets it; the reset
statement is logged and printed by `python -m dcat_release manual`.
"""

__version__ = "0.1.0"
