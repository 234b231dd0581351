import threading

from capsulizer.harvest import Job, JobResult
from capsulizer.worker import HarvestWorker, LocalJobQueue, load_seeds


class StubHarvester:
    """Fails the first ``failures[url]`` runs of a job, then succeeds."""

    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.calls = []
        self._lock = threading.Lock()

    def run_job(self, job):
        with self._lock:
            self.calls.append(job.url)
            remaining = self.failures.get(job.url, 0)
            if remaining:
                self.failures[job.url] = remaining - 1
        if remaining:
            raise RuntimeError(f"render context failed for {job.url}")
        return JobResult(ok=True, run_id=f"run-{job.owner_slug}", manifest_path=f"runs/{job.owner_slug}.json")


class Progress:
    def __init__(self):
        self.n = 0

    def update(self, n):
        self.n += n


def jobs(n):
    return [Job(f"site-{i}", f"https://site{i}.example/") for i in range(n)]


def test_queue_attempts_budget():
    q = LocalJobQueue(attempts=2)
    job = Job("acme", "https://acme.io/")
    assert q.retry(job, 1)
    assert len(q) == 1
    assert q.get() == (job, 2)
    assert not q.retry(job, 2)
    assert q.get() is None


def test_all_jobs_run():
    q = LocalJobQueue()
    for job in jobs(7):
        q.put(job)
    progress = Progress()
    worker = HarvestWorker(StubHarvester(), q, concurrency=3, progress=progress)

    results = worker.run()
    assert sorted(r.run_id for r in results) == sorted(f"run-site-{i}" for i in range(7))
    assert worker.failures == []
    assert progress.n == 7


def test_failed_job_is_retried():
    q = LocalJobQueue(attempts=3)
    q.put(Job("flaky", "https://flaky.example/"))
    harvester = StubHarvester({"https://flaky.example/": 2})

    results = HarvestWorker(harvester, q, concurrency=2).run()
    assert len(results) == 1
    assert harvester.calls == ["https://flaky.example/"] * 3


def test_attempts_exhausted():
    q = LocalJobQueue(attempts=2)
    q.put(Job("down", "https://down.example/"))
    q.put(Job("up", "https://up.example/"))
    harvester = StubHarvester({"https://down.example/": 10})
    worker = HarvestWorker(harvester, q, concurrency=1)

    results = worker.run()
    assert [r.run_id for r in results] == ["run-up"]
    assert len(worker.failures) == 1
    assert worker.failures[0]["attempts"] == 2
    assert harvester.calls.count("https://down.example/") == 2


def test_load_seeds_csv(tmp_path):
    path = tmp_path / "seeds.csv"
    path.write_text("url,ownerSlug\nhttps://www.acme.io/,acme\nhttps://shop.example.com/,\n,\n", encoding="utf-8")
    assert load_seeds(path) == [
        Job("acme", "https://www.acme.io/"),
        Job("shop-example-com", "https://shop.example.com/"),
    ]


def test_load_seeds_text(tmp_path):
    path = tmp_path / "seeds.txt"
    path.write_text("# sites\nhttps://www.acme.io/\n\nhttps://blog.example.org/\n", encoding="utf-8")
    assert load_seeds(path) == [
        Job("acme-io", "https://www.acme.io/"),
        Job("blog-example-org", "https://blog.example.org/"),
    ]
