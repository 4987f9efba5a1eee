import re
import time
from collections import deque

_REDACTIONS = [
    (re.compile(r'ya29\.[a-zA-Z0-9\-\._~]+'), 'ya29.[REDACTED]'), # Google OAuth access tokens
    (re.compile(r'AIza[a-zA-Z0-9\-_]{20,}'), 'AIza[REDACTED]'), # Google API keys
    (re.compile(r'sk-[a-zA-Z0-9]{20,}'), 'sk-[REDACTED]'),
    (re.compile(r'Bearer [a-zA-Z0-9\-\._~]+'), 'Bearer [REDACTED]'),
]


class ActivityFeed:
    """Recent user-visible events for the dashboard, per user."""

    def __init__(self, maxlen=20):
        self.maxlen = maxlen
        self.events = {}

    def sanitize_event(self, text):
        for pattern, replacement in _REDACTIONS:
            text = pattern.sub(replacement, text)
        return text

    def log_event(self, user_id, event, project_id=None):
        """Log an event (e.g. 'GTM container created for Acme')"""
        user_events = self.events.setdefault(user_id, deque(maxlen=self.maxlen))
        user_events.append({
            "time": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "event": self.sanitize_event(str(event)),
            "project_id": project_id,
        })

    def recent(self, user_id, limit=10):
        """Newest first."""
        return list(reversed(self.events.get(user_id, [])))[:limit]

    def clear(self):
        self.events.clear()


# Global Instance
feed = ActivityFeed()
