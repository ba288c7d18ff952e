"""Outbound notifications (email/push) behind a single-method port.

Workflows call ``notifier.notify(Notification(...))`` and never care how, or
whether, the message is delivered.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    kind: str
    recipients: tuple[str, ...]
    subject: str
    payload: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    def notify(self, event: Notification) -> None: ...


class LoggingNotifier:
    def notify(self, event: Notification) -> None:
        if not event.recipients:
            return
        logger.info(
            "[NOTIFY] kind=%s to=%s subj=%s",
            event.kind,
            ",".join(event.recipients),
            event.subject,
        )


class QueueNotifier:
    """Keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[Notification] = []

    def notify(self, event: Notification) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]


class NullNotifier:
    def notify(self, event: Notification) -> None:
        return None


default_notifier: Notifier = LoggingNotifier()
