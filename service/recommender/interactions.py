"""
Interaction Store.

In-process record of impressions, clicks, bookings and searches, per user.

- Each user keeps at most the most recent ``max_events_per_user`` events
- Writes for one user are serialized by that user's lock, created on the
  first write; a registry lock guards lock creation only
- ``purge_older_than`` replaces each user's list with a filtered copy under
  the user's lock

Events are not persisted.
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional
import threading
import logging

from rentalrec.domain import InteractionEvent, InteractionType

logger = logging.getLogger(__name__)


class InteractionStore:
    """
    Thread-safe per-user event lists.

    Example:
        >>> store = InteractionStore(max_events_per_user=100)
        >>> store.record(InteractionEvent(7, 3, InteractionType.CLICK, "", datetime.now()))
        >>> store.count_for_user(7)
        1
    """

    def __init__(self, max_events_per_user: int = 100):
        self.max_events_per_user = max_events_per_user
        self._events: Dict[int, List[InteractionEvent]] = {}
        self._user_locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, user_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[user_id] = lock
            return lock

    def _existing_lock(self, user_id: int) -> Optional[threading.Lock]:
        with self._registry_lock:
            return self._user_locks.get(user_id)

    def _user_ids(self) -> List[int]:
        with self._registry_lock:
            return list(self._user_locks)

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    def record(self, event: InteractionEvent) -> None:
        """Append an event, dropping the oldest ones beyond the cap."""
        with self._lock_for(event.user_id):
            events = self._events.setdefault(event.user_id, [])
            events.append(event)
            overflow = len(events) - self.max_events_per_user
            if overflow > 0:
                del events[:overflow]

    def purge_older_than(self, cutoff: datetime) -> int:
        """
        Drop every event with ``timestamp < cutoff``.

        Returns:
            Number of events removed
        """
        removed = 0
        for user_id in self._user_ids():
            with self._lock_for(user_id):
                events = self._events.get(user_id)
                if not events:
                    continue
                kept = [e for e in events if e.timestamp >= cutoff]
                removed += len(events) - len(kept)
                self._events[user_id] = kept
        return removed

    def clear(self) -> None:
        for user_id in self._user_ids():
            with self._lock_for(user_id):
                self._events.pop(user_id, None)

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    def events_for_user(self, user_id: int) -> List[InteractionEvent]:
        """Copy of the user's events, oldest first."""
        lock = self._existing_lock(user_id)
        if lock is None:
            return []
        with lock:
            return list(self._events.get(user_id, []))

    def count_for_user(self, user_id: int) -> int:
        lock = self._existing_lock(user_id)
        if lock is None:
            return 0
        with lock:
            return len(self._events.get(user_id, []))

    def recent_searches(self, user_id: int, limit: int) -> List[InteractionEvent]:
        """Most recent SEARCH events of a user, newest first."""
        searches = [
            e for e in self.events_for_user(user_id)
            if e.type == InteractionType.SEARCH
        ]
        searches.sort(key=lambda e: e.timestamp, reverse=True)
        return searches[:limit]

    def all_events(self) -> List[InteractionEvent]:
        events: List[InteractionEvent] = []
        for user_id in self._user_ids():
            events.extend(self.events_for_user(user_id))
        return events

    def type_counts(self) -> Dict[InteractionType, int]:
        """Number of events of each type across all users."""
        counts = Counter(e.type for e in self.all_events())
        return {t: counts.get(t, 0) for t in InteractionType}

    def item_counts_since(self, since: datetime) -> Dict[int, int]:
        """Events per item id with ``timestamp >= since``."""
        counts: Dict[int, int] = Counter(
            e.item_id for e in self.all_events()
            if e.item_id is not None and e.timestamp >= since
        )
        return dict(counts)

    def total_events(self) -> int:
        return len(self.all_events())

    def user_count(self) -> int:
        """Users with at least one stored event."""
        return sum(1 for user_id in self._user_ids() if self.count_for_user(user_id) > 0)
