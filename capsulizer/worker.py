"""
Job scheduling and the command-line entry point.

N worker slots (threads) pull one job at a time from the queue and run it
to completion. A job that fails is re-enqueued until its attempts budget
is spent. Jobs share one store and one host throttle.
"""

import argparse
import csv
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from scrapy.utils.log import configure_logging
from tqdm import tqdm

from .config import load_settings
from .harvest import Harvester, Job, owner_slug_for
from .store import PostgresCapsuleStore, SqliteCapsuleStore
from .throttle import HostThrottle

logger = logging.getLogger(__name__)


class LocalJobQueue:

    def __init__(self, attempts: int = 3):
        self.attempts = max(1, int(attempts))
        self._q = queue.Queue()

    def put(self, job: Job, attempt: int = 1):
        self._q.put((job, attempt))

    def get(self) -> Optional[tuple]:
        try:
            return self._q.get_nowait()
        except queue.Empty:
            return None

    def retry(self, job: Job, attempt: int) -> bool:
        """Re-enqueues ``job`` when attempts remain; False once the budget is spent."""
        if attempt >= self.attempts:
            return False
        self.put(job, attempt + 1)
        return True

    def __len__(self):
        return self._q.qsize()


class HarvestWorker:

    def __init__(self, harvester: Harvester, job_queue: LocalJobQueue, concurrency: int = 4, progress=None):
        self.harvester = harvester
        self.queue = job_queue
        self.concurrency = max(1, int(concurrency))
        self.progress = progress
        self.results = []
        self.failures = []
        self._lock = threading.Lock()

    def _done(self):
        if self.progress is not None:
            self.progress.update(1)

    def _slot(self, slot: int):
        while True:
            item = self.queue.get()
            if item is None:
                return
            job, attempt = item
            try:
                result = self.harvester.run_job(job)
            except Exception as e:
                logger.error(f"[WORKER] slot={slot} {job.url} attempt {attempt} failed: {e}")
                if self.queue.retry(job, attempt):
                    continue
                with self._lock:
                    self.failures.append({"job": job, "attempts": attempt, "error": str(e)})
                self._done()
                continue
            with self._lock:
                self.results.append(result)
            self._done()

    def run(self) -> list:
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="harvest") as pool:
            slots = [pool.submit(self._slot, i) for i in range(self.concurrency)]
            for f in slots:
                f.result()
        return self.results


def load_seeds(path) -> list:
    """CSV with a ``url`` column (``ownerSlug`` optional) or one URL per line."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        head = f.readline()
        f.seek(0)
        if "url" in [c.strip() for c in head.lower().split(",")]:
            rows = [r for r in csv.DictReader(f) if (r.get("url") or "").strip()]
            return [Job.from_dict(r) for r in rows]
        jobs = []
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            jobs.append(Job(owner_slug=owner_slug_for(line), url=line))
        return jobs


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Harvest structured-data capsules from websites.")
    ap.add_argument("--url", default=None, help="Single site to harvest")
    ap.add_argument("--owner", default=None, help="Owner slug for --url (default: derived from the hostname)")
    ap.add_argument("--seeds", default=None, help="CSV (url[,ownerSlug]) or text file with one URL per line")
    ap.add_argument("--concurrency", type=int, default=None, help="Worker slots (default: CONCURRENCY)")
    ap.add_argument("--single-page", action="store_true", help="Only harvest the seed page of each site")
    ap.add_argument("--postgres", action="store_true", help="Store into PostgreSQL (PG* env) instead of sqlite")
    args = ap.parse_args(argv)

    load_dotenv()
    overrides = {}
    if args.concurrency:
        overrides["CONCURRENCY"] = args.concurrency
    if args.single_page:
        overrides["SINGLE_PAGE"] = True
    settings = load_settings(**overrides)
    configure_logging(settings)

    if args.url:
        jobs = [Job(owner_slug=args.owner or owner_slug_for(args.url), url=args.url)]
    elif args.seeds:
        jobs = load_seeds(args.seeds)
    else:
        ap.error("one of --url or --seeds is required")

    job_queue = LocalJobQueue(attempts=settings.getint("JOB_ATTEMPTS"))
    for job in jobs:
        job_queue.put(job)
    print(f"[*] {len(jobs)} job(s), concurrency={settings.getint('CONCURRENCY')}")

    throttle = HostThrottle.from_settings(settings)
    store = PostgresCapsuleStore() if args.postgres else SqliteCapsuleStore.from_settings(settings)
    with store, tqdm(total=len(jobs), desc="Harvest") as bar:
        harvester = Harvester.from_settings(settings, store, throttle=throttle)
        worker = HarvestWorker(harvester, job_queue, settings.getint("CONCURRENCY"), progress=bar)
        results = worker.run()

    for r in results:
        print(f"[+] {r.run_id} -> {r.manifest_path}")
    for fail in worker.failures:
        print(f"[!] {fail['job'].url} failed after {fail['attempts']} attempt(s): {fail['error']}")
    print(f"[+] jobs ok: {len(results)}, failed: {len(worker.failures)}")
    return 1 if worker.failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
