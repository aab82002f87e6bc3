import threading
import time


def looks_like_fake(user) -> bool:
    # Very basic: bot accounts and accounts with no name at all don't get to play.
    if getattr(user, "is_bot", False):
        return True

    if not getattr(user, "username", None) and not getattr(user, "first_name", None):
        return True

    return False

class SimpleRateLimit:
    """Sliding-window counter per key, shared by the API threadpool and the bot."""

    def __init__(self, clock=time.monotonic):
        self._events = {}
        self._lock = threading.Lock()
        self._clock = clock

    def allow(self, key: str, limit: int, per_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            self._prune(now, per_seconds)
            arr = [t for t in self._events.get(key, []) if now - t < per_seconds]
            if len(arr) >= limit:
                self._events[key] = arr
                return False
            arr.append(now)
            self._events[key] = arr
            return True

    def _prune(self, now: float, per_seconds: int) -> None:
        # drop keys whose whole window has expired; caller holds the lock
        for key in [k for k, arr in self._events.items() if not arr or now - arr[-1] >= per_seconds]:
            del self._events[key]

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._events)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()

rate_limiter = SimpleRateLimit()
