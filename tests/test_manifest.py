import re

import orjson
import pytest

from capsulizer.manifest import COUNTERS, RunRecorder, new_run_id

NOW = "2024-05-01T12:00:00.000Z"


def recorder(tmp_path, run_id="20240501T120000Z-abcdef"):
    return RunRecorder(run_id, "acme", "https://example.com/", {"maxDepth": 10},
                       runs_dir=tmp_path / "runs", log_path=tmp_path / "crawler.log", clock=lambda: NOW)


def test_run_id_format():
    assert re.match(r"^\d{8}T\d{6}Z-[0-9a-f]{6}$", new_run_id())
    assert new_run_id() != new_run_id()


def test_manifest_written_on_success(tmp_path):
    with recorder(tmp_path) as rec:
        rec.count("pages")
        rec.count("schemaErrors", 3)
        rec.receipt("https://example.com/", 0, "ok", fingerprint="sha256:x", snapshot=None)

    doc = orjson.loads(rec.manifest_path.read_bytes())
    assert rec.manifest_path == tmp_path / "runs" / "20240501T120000Z-abcdef.json"
    assert doc["status"] == "ok"
    assert doc["startedAt"] == NOW and doc["endedAt"] == NOW
    assert doc["job"] == {"ownerSlug": "acme", "url": "https://example.com/"}
    assert doc["settings"] == {"maxDepth": 10}
    assert set(doc["summary"]) == set(COUNTERS)
    assert doc["summary"]["pages"] == 1
    assert doc["summary"]["schemaErrors"] == 3
    assert doc["receipts"] == [{"url": "https://example.com/", "depth": 0, "status": "ok", "fingerprint": "sha256:x"}]
    assert doc["errors"] == []


def test_manifest_written_on_failure(tmp_path):
    with pytest.raises(RuntimeError):
        with recorder(tmp_path) as rec:
            rec.count("pages")
            raise RuntimeError("browser crashed")

    doc = orjson.loads(rec.manifest_path.read_bytes())
    assert doc["status"] == "failed"
    assert doc["summary"]["pages"] == 1
    assert doc["errors"] == [{"stage": "fatal", "type": "RuntimeError", "message": "browser crashed", "time": NOW}]


def test_crawl_log_line(tmp_path):
    with pytest.raises(ValueError):
        with recorder(tmp_path):
            raise ValueError("boom")

    line = (tmp_path / "crawler.log").read_text(encoding="utf-8").strip()
    stamp, _, payload = line.partition("] ")
    assert stamp.startswith("[")
    entry = orjson.loads(payload)
    assert entry["site"] == "https://example.com/"
    assert entry["status"] == "failed"
    assert entry["error"] == "boom"
    assert entry["pages"] == 0


def test_finalize_is_written_once(tmp_path):
    rec = recorder(tmp_path)
    with rec:
        pass
    rec.count("pages")
    rec.finalize()
    assert orjson.loads(rec.manifest_path.read_bytes())["summary"]["pages"] == 0
    assert len((tmp_path / "crawler.log").read_text(encoding="utf-8").splitlines()) == 1


def test_page_error_entry(tmp_path):
    rec = recorder(tmp_path)
    entry = rec.error("render", TimeoutError("slow"), url="https://example.com/a")
    assert entry["url"] == "https://example.com/a"
    assert entry["stage"] == "render"
