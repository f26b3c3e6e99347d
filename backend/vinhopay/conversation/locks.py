"""
PhoneLockRegistry - per-phone serialization of inbound handlers.

Two messages from the same phone must not both read the same stage and both
apply a transition. Inside one process this registry serializes them; across
processes the version columns on users/reservations/feedbacks turn the
second write into a StaleDataError (see conversation.router).
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class PhoneLockRegistry:
    """Acquire one lock per phone number; entries are dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextmanager
    def lock(self, phone: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(phone)
            if entry is None:
                entry = self._entries[phone] = _Entry()
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(phone, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


phone_locks = PhoneLockRegistry()
