"""Event log port (abstract interface).

The marketplace keeps its durable state on an append-only, multi-writer log.
Publishing and reading are split into two contracts so that orchestration code
can depend on only the side it needs. Adapters translate typed records to the
wire format via ``marketplace.eventlog.tags``.
"""

from abc import ABC, abstractmethod

from marketplace.eventlog.records import LogEntry, PaymentReceipt, Record


class PublishError(Exception):
    """A record could not be appended to the log."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PublishRejected(PublishError):
    """The log refused the record."""


class PublishTimeout(PublishError):
    """The log did not acknowledge the record in time."""


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, record: Record) -> str:
        """Append a record authored by ``record.author_pubkey`` and return its event id."""
        ...


class EventReader(ABC):
    @abstractmethod
    async def fetch_order_events(self, order_id: str) -> list[LogEntry]:
        """Return every status and shipping record currently known for an order."""
        ...

    @abstractmethod
    async def fetch_order(self, order_id: str) -> LogEntry | None:
        """Return the creation record for an order, if it has been seen."""
        ...

    @abstractmethod
    async def wait_for_receipt(self, order_id: str, reference: str) -> PaymentReceipt:
        """Suspend until a payment receipt for ``reference`` appears.

        Implementations wait indefinitely; callers bound the wait and cancel
        it. Cancellation must release any subscription held by the wait.
        """
        ...


class EventLog(EventPublisher, EventReader):
    """An adapter that can both publish and read."""
