"""Event log factory.

Provides get_event_log() / set_event_log() to swap implementations. The
adapter is chosen by the MARKETPLACE_EVENT_LOG environment variable:
- "memory" (default): InMemoryEventLog for development and testing
"""

import os

from marketplace.eventlog.memory_adapter import InMemoryEventLog
from marketplace.eventlog.port import EventLog

_current_event_log: EventLog | None = None


def _build_event_log() -> EventLog:
    adapter = os.getenv("MARKETPLACE_EVENT_LOG", "memory").lower()
    if adapter == "memory":
        return InMemoryEventLog()
    raise ValueError(f"Unknown event log adapter: {adapter!r}")


def get_event_log() -> EventLog:
    """Return the current event log. Defaults to the adapter named in the environment."""
    global _current_event_log
    if _current_event_log is None:
        _current_event_log = _build_event_log()
    return _current_event_log


def set_event_log(event_log: EventLog) -> None:
    """Override the active event log (useful for tests)."""
    global _current_event_log
    _current_event_log = event_log


def reset_event_log() -> None:
    """Reset to the default event log."""
    global _current_event_log
    _current_event_log = None
