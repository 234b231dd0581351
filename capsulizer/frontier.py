"""
Per-job breadth-first frontier.

The queue and the seen set belong to one job and are never shared, so no
locking is needed here (compare ``throttle.HostThrottle``).
"""

import logging
from collections import deque
from urllib.parse import parse_qsl, urlsplit

from w3lib.url import canonicalize_url, url_query_cleaner

logger = logging.getLogger(__name__)

TRACKING_PREFIXES = ("utm_", "gclid", "fbclid", "msclkid", "mc_", "_ga", "_hs", "yclid", "ref_src")


def normalize_url(url: str) -> str:
    """Drops the fragment and tracking query parameters."""
    query = urlsplit(url).query
    tracking = [k for k, _ in parse_qsl(query, keep_blank_values=True)
                if k.lower().startswith(TRACKING_PREFIXES)]
    return url_query_cleaner(url, tracking, remove=True, unique=False, keep_fragments=False)


def dedup_key(url: str) -> str:
    return canonicalize_url(normalize_url(url))


def origin_of(url: str) -> tuple:
    parts = urlsplit(url)
    port = parts.port or {"http": 80, "https": 443}.get(parts.scheme)
    return parts.scheme.lower(), (parts.hostname or "").lower(), port


def robots_allowed(url: str) -> bool:
    # stub: robots.txt policy is not evaluated
    logger.debug(f"[ROBOTS] not checked for {url}")
    return True


class Frontier:

    def __init__(self, seed_url: str, max_depth: int = 10, max_pages: int = 10, single_page: bool = False):
        self.seed_url = normalize_url(seed_url)
        self.origin = origin_of(self.seed_url)
        self.origins = {self.origin}
        self.max_depth = max_depth
        self.single_page = single_page
        self.max_pages = 1 if single_page else max_pages
        self.queue = deque([(self.seed_url, 0)])
        self.seen = {dedup_key(self.seed_url)}
        self.visited = []

    def __iter__(self):
        return self

    def __next__(self):
        while self.queue and len(self.visited) < self.max_pages:
            url, depth = self.queue.popleft()
            if depth > self.max_depth:
                continue
            self.visited.append(url)
            return url, depth
        raise StopIteration

    def follow_redirect(self, requested: str, final_url: str) -> bool:
        """Accepts the origin a seed redirected to (``example.com`` -> ``www.example.com``)."""
        if not final_url or not self.visited or requested != self.visited[0]:
            return False
        final = normalize_url(final_url)
        self.seen.add(dedup_key(final))
        origin = origin_of(final)
        if origin in self.origins:
            return False
        self.origins.add(origin)
        logger.info(f"[REDIRECT] {requested} -> {final}, following {origin[0]}://{origin[1]}")
        return True

    def add_links(self, links, parent_depth: int) -> int:
        """Enqueues unseen same-origin links one level below the parent."""
        if self.single_page:
            return 0
        depth = parent_depth + 1
        if depth > self.max_depth:
            return 0

        added = 0
        for link in links:
            if not link.lower().startswith(("http://", "https://")):
                continue
            url = normalize_url(link)
            if origin_of(url) not in self.origins:
                continue
            key = dedup_key(url)
            if key in self.seen:
                continue
            self.seen.add(key)
            self.queue.append((url, depth))
            added += 1
        return added
