from collections import deque
import logging
import threading

logger = logging.getLogger(__name__)


class CapsuleCreated:
    name = "CapsuleCreated"

    def __init__(self, capsule_id, sender, unlock_timestamp, created_at):
        self.capsule_id = capsule_id
        self.sender = sender
        self.unlock_timestamp = unlock_timestamp
        self.created_at = created_at

    def to_dict(self):
        return {
            "event": self.name,
            "capsule_id": self.capsule_id,
            "sender": self.sender,
            "unlock_timestamp": self.unlock_timestamp,
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"CapsuleCreated({self.capsule_id[:8]}, sender={self.sender[:8]}, unlock={self.unlock_timestamp})"


class CapsuleClaimed:
    name = "CapsuleClaimed"

    def __init__(self, capsule_id, claimed_at):
        self.capsule_id = capsule_id
        self.claimed_at = claimed_at

    def to_dict(self):
        return {
            "event": self.name,
            "capsule_id": self.capsule_id,
            "claimed_at": self.claimed_at,
        }

    def __repr__(self):
        return f"CapsuleClaimed({self.capsule_id[:8]}, at={self.claimed_at})"


class EventLog:
    """
    Append-only event sink. Events are recorded after a successful commit
    and handed to subscribers; a failing subscriber never affects state.

    History is unbounded unless `maxlen` is given, in which case only the
    newest `maxlen` events are kept. Subscribers still see every event.
    """

    def __init__(self, maxlen=None):
        self._events = deque(maxlen=maxlen)
        self._subscribers = []
        self._lock = threading.Lock()

    def subscribe(self, callback):
        with self._lock:
            self._subscribers.append(callback)

    def emit(self, event):
        with self._lock:
            self._events.append(event)
            subscribers = self._subscribers[:]

        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed for %s", event.name)

    @property
    def events(self):
        with self._lock:
            return list(self._events)

    def of_type(self, event_type):
        return [event for event in self.events if isinstance(event, event_type)]

    def __len__(self):
        with self._lock:
            return len(self._events)
