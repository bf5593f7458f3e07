"""In-memory event log for development and testing.

Stores records in their wire form so every publish and read goes through the
same tag codec a relay-backed adapter would use. It can be configured to fail
publishes, either for every record or only for selected record types.
"""

import asyncio
import hashlib
import json
import time
from collections import defaultdict
from collections.abc import Callable, Iterable

from marketplace.eventlog.port import EventLog, PublishError, PublishRejected
from marketplace.eventlog.records import (
    LogEntry,
    OrderCreation,
    PaymentReceipt,
    Record,
    RecordType,
    ShippingUpdate,
    StatusUpdate,
)
from marketplace.eventlog.tags import WireEvent, decode, encode


def compute_event_id(author_pubkey: str, created_at: int, event: WireEvent) -> str:
    """Content hash over the serialized envelope."""
    payload = json.dumps(
        [0, author_pubkey, created_at, event.kind, event.tags, event.content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class InMemoryEventLog(EventLog):
    """Configurable in-memory event log."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Publish rejected"
        self.error_class: type[PublishError] = PublishRejected
        self.fail_on: frozenset[RecordType] | None = None
        self.calls: list[dict] = []
        self._clock = clock
        self._last_created_at = 0
        self._entries: list[tuple[str, str, int, WireEvent]] = []
        self._receipt_waiters: dict[tuple[str, str], list[asyncio.Future]] = defaultdict(list)

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Publish rejected",
        error_class: type[PublishError] = PublishRejected,
        fail_on: Iterable[RecordType] | None = None,
    ) -> None:
        """Configure publish behavior at runtime.

        ``fail_on`` limits failures to the given record types; ``None`` fails
        every publish when ``should_succeed`` is False.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.error_class = error_class
        self.fail_on = frozenset(fail_on) if fail_on is not None else None

    def _should_fail(self, record: Record) -> bool:
        if self.should_succeed:
            return False
        return self.fail_on is None or record.record_type in self.fail_on

    def _next_created_at(self) -> int:
        # Keep publish order observable when several records land in the same second
        created_at = max(int(self._clock()), self._last_created_at + 1)
        self._last_created_at = created_at
        return created_at

    async def publish(self, record: Record) -> str:
        self.calls.append({"method": "publish", "record_type": record.record_type.value, "record": record})
        if self._should_fail(record):
            raise self.error_class(self.failure_reason)
        return self.append(record, created_at=self._next_created_at())

    def append(self, record: Record, created_at: int, author_pubkey: str | None = None) -> str:
        """Store a record with an explicit timestamp, as if another client had written it."""
        author = author_pubkey or record.author_pubkey
        event = encode(record)
        event_id = compute_event_id(author, created_at, event)
        if any(existing_id == event_id for existing_id, _, _, _ in self._entries):
            return event_id

        self._entries.append((event_id, author, created_at, event))
        self._last_created_at = max(self._last_created_at, created_at)

        if isinstance(record, PaymentReceipt):
            self._notify_receipt(record)
        return event_id

    def _notify_receipt(self, receipt: PaymentReceipt) -> None:
        waiters = self._receipt_waiters.pop((receipt.order_id, receipt.reference), [])
        for future in waiters:
            if not future.done():
                future.set_result(receipt)

    def _decoded(self) -> list[LogEntry]:
        return [
            LogEntry(
                event_id=event_id,
                author_pubkey=author,
                created_at=created_at,
                record=decode(event, author),
            )
            for event_id, author, created_at, event in self._entries
        ]

    async def fetch_order_events(self, order_id: str) -> list[LogEntry]:
        return [
            entry
            for entry in self._decoded()
            if isinstance(entry.record, (StatusUpdate, ShippingUpdate)) and entry.record.order_id == order_id
        ]

    async def fetch_order(self, order_id: str) -> LogEntry | None:
        for entry in self._decoded():
            if isinstance(entry.record, OrderCreation) and entry.record.order_id == order_id:
                return entry
        return None

    def records(self, record_type: RecordType | None = None) -> list[Record]:
        """Return stored records in append order, optionally filtered by type."""
        return [
            entry.record
            for entry in self._decoded()
            if record_type is None or entry.record.record_type == record_type
        ]

    async def wait_for_receipt(self, order_id: str, reference: str) -> PaymentReceipt:
        for entry in self._decoded():
            record = entry.record
            if isinstance(record, PaymentReceipt) and record.order_id == order_id and record.reference == reference:
                return record

        future = asyncio.get_running_loop().create_future()
        key = (order_id, reference)
        self._receipt_waiters[key].append(future)
        try:
            return await future
        finally:
            waiters = self._receipt_waiters.get(key)
            if waiters and future in waiters:
                waiters.remove(future)
                if not waiters:
                    del self._receipt_waiters[key]

    @property
    def pending_waiters(self) -> int:
        return sum(len(waiters) for waiters in self._receipt_waiters.values())
