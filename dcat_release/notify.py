"""Failure notifications.

Delivery is fire-and-forget: a notifier that cannot deliver logs the problem
and returns. It never turns a failed release into a different failure.

OutboxNotifier files the message as an nmo:Email in the outbox folder of the
email graph, where a mail delivery service picks it up.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import uuid4

from .config import Settings
from .store import TripleStore
from .terms import escape_datetime, escape_string, escape_uri, now
from .vocab import prefixes

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, subject: str, body: str) -> None:
        ...


class LogNotifier:
    """Logs the notification and nothing else."""

    def send(self, subject: str, body: str) -> None:
        logger.error("%s\n%s", subject, body)


class OutboxNotifier:
    def __init__(self, store: TripleStore, settings: Settings):
        self.store = store
        self.settings = settings

    def send(self, subject: str, body: str) -> None:
        if not self.settings.email_to_address_on_failure:
            logger.warning("No failure email address configured. Not sending: %s", subject)
            return

        uuid = str(uuid4())
        uri = f"{self.settings.resource_base_uri}/id/emails/{uuid}"
        try:
            self.store.update(f"""
                {prefixes("nmo", "mu")}
                INSERT DATA {{
                  GRAPH {escape_uri(self.settings.email_graph)} {{
                    {escape_uri(uri)} a nmo:Email ;
                      mu:uuid {escape_string(uuid)} ;
                      nmo:messageFrom {escape_string(self.settings.email_from_address)} ;
                      nmo:emailTo {escape_string(self.settings.email_to_address_on_failure)} ;
                      nmo:messageSubject {escape_string(subject)} ;
                      nmo:plainTextMessageContent {escape_string(body)} ;
                      nmo:sentDate {escape_datetime(now())} ;
                      nmo:isPartOf {escape_uri(self.settings.email_outbox)} .
                  }}
                }}
            """)
        except Exception:
            logger.exception("Failed to file failure email <%s>", uri)
        else:
            logger.info("Filed failure email <%s> in outbox", uri)
