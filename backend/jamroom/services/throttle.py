import time
from collections import defaultdict
from typing import Callable, Dict, List


class ConnectionThrottle:
    """Sliding window request limit per connection: ``limit`` requests per ``window`` seconds."""

    def __init__(self, limit: int, window: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window
        self.clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)

    def allow(self, connection_id: str) -> bool:
        now = self.clock()
        recent = [t for t in self._requests[connection_id] if now - t < self.window]
        if len(recent) >= self.limit:
            self._requests[connection_id] = recent
            return False
        recent.append(now)
        self._requests[connection_id] = recent
        return True

    def forget(self, connection_id: str):
        self._requests.pop(connection_id, None)
