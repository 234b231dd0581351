import threading
import time
from urllib.parse import urlsplit


class HostThrottle:
    """
    Minimum interval between two requests to the same host, shared by every
    job of the process. Reading the last hit, computing the wait and stamping
    the next hit happen under one lock; the sleep itself happens outside it
    on the slot that was reserved.
    """

    def __init__(self, min_interval_s: float, clock=time.monotonic, sleep=time.sleep):
        self.min_interval = max(0.0, float(min_interval_s))
        self.clock = clock
        self.sleep = sleep
        self._last_hit = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "HostThrottle":
        return cls(settings.getint("PER_HOST_DELAY_MS") / 1000.0, **kwargs)

    def reserve(self, host: str) -> float:
        with self._lock:
            now = self.clock()
            last = self._last_hit.get(host)
            wait = 0.0 if last is None else max(0.0, self.min_interval - (now - last))
            self._last_hit[host] = now + wait
        return wait

    def wait(self, url: str) -> float:
        host = (urlsplit(url).hostname or "").lower()
        wait = self.reserve(host)
        if wait > 0:
            self.sleep(wait)
        return wait

    def last_hit(self, host: str):
        with self._lock:
            return self._last_hit.get(host)
