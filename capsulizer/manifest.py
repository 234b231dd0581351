"""
Run recorder
------------
One manifest per job execution, written exactly once when the ``with``
block exits, whether it exits normally or through an exception. The
exception is recorded as a fatal error entry and then propagates.
"""

import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import orjson

logger = logging.getLogger(__name__)

COUNTERS = ("pages", "capsules", "inferred", "inserted", "rejected", "schemaErrors", "errors")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ") + "-" + secrets.token_hex(3)


def append_log(log_path, entry: dict) -> None:
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "ab") as fw:
        fw.write(f"[{utcnow_iso()}] ".encode("utf-8") + orjson.dumps(entry, option=orjson.OPT_NON_STR_KEYS) + b"\n")


class RunRecorder:

    def __init__(self, run_id: str, owner_slug: str, url: str, settings: dict,
                 runs_dir="runs", log_path="crawler.log", clock=utcnow_iso):
        self.run_id = run_id
        self.job = {"ownerSlug": owner_slug, "url": url}
        self.settings = settings
        self.runs_dir = Path(runs_dir)
        self.log_path = log_path
        self.clock = clock
        self.started_at = None
        self.ended_at = None
        self.node = {"id": None, "category": None}
        self.summary = {k: 0 for k in COUNTERS}
        self.receipts = []
        self.errors = []
        self.status = "running"
        self.written = False

    @property
    def manifest_path(self) -> Path:
        return self.runs_dir / f"{self.run_id}.json"

    def __enter__(self):
        self.started_at = self.clock()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is not None:
            self.error("fatal", exc)
            self.status = "failed"
            logger.error(f"[FATAL] {self.job['url']} run={self.run_id}: {exc}")
        else:
            self.status = "ok"
        try:
            self.finalize()
        except OSError as e:
            if exc is None:
                raise
            # the job error propagates, not the write failure
            logger.error(f"[MANIFEST] cannot write {self.manifest_path}: {e}")
        return False

    # ---------------- accumulation ----------------
    def count(self, key: str, n: int = 1):
        self.summary[key] += n

    def receipt(self, url: str, depth: int, status: str, **extra):
        rec = {"url": url, "depth": depth, "status": status}
        rec.update({k: v for k, v in extra.items() if v is not None})
        self.receipts.append(rec)
        return rec

    def error(self, stage: str, exc, url: Optional[str] = None):
        entry = {"stage": stage, "type": type(exc).__name__, "message": str(exc), "time": self.clock()}
        if url:
            entry["url"] = url
        self.errors.append(entry)
        return entry

    # ---------------- output ----------------
    def document(self) -> dict:
        return {
            "runId": self.run_id,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "status": self.status,
            "job": self.job,
            "settings": self.settings,
            "node": self.node,
            "summary": self.summary,
            "receipts": self.receipts,
            "errors": self.errors,
        }

    def log_entry(self) -> dict:
        entry = {"site": self.job["url"], "runId": self.run_id, "status": self.status,
                 "start": self.started_at, "end": self.ended_at}
        entry.update(self.summary)
        if self.status == "failed" and self.errors:
            entry["error"] = self.errors[-1]["message"]
        return entry

    def finalize(self) -> Path:
        if self.written:
            return self.manifest_path
        self.ended_at = self.clock()
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_bytes(
            orjson.dumps(self.document(), option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS)
        )
        self.written = True
        try:
            append_log(self.log_path, self.log_entry())
        except OSError as e:
            logger.warning(f"[LOG] cannot append to {self.log_path}: {e}")
        return self.manifest_path
