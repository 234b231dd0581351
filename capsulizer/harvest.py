"""
Harvest orchestrator: one job = one site.

render -> extract -> infer -> merge -> fingerprint -> validate -> persist,
page by page in breadth-first order, then classify the node and record
the run manifest. Page-level failures end up in counters and receipts;
render-context and persistence failures abort the job after the manifest
has been written.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from langdetect import DetectorFactory, detect
from langdetect.detector_factory import init_factory
from langdetect.lang_detect_exception import LangDetectException

from .canonical import canonicalize
from .classifier import classify
from .config import model_enabled, schema_path, settings_snapshot
from .exceptions import RenderError
from .extractor import extract, page_links
from .fingerprint import fingerprint
from .frontier import Frontier, robots_allowed
from .inference import InferenceOptions, infer, type_family
from .inference.model import ModelAugmenter
from .manifest import RunRecorder, new_run_id, utcnow_iso
from .render import PlaywrightRenderer
from .throttle import HostThrottle
from .validation import NEEDS_REVIEW, CapsuleValidator

logger = logging.getLogger(__name__)

DetectorFactory.seed = 0
# profiles are loaded once, at import
init_factory()

CAPSULE_CONTEXT = "https://agentnet.ai/context"
CAPSULE_TYPE = "Capsule"


@dataclass(frozen=True)
class Job:
    owner_slug: str
    url: str

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        url = data["url"].strip()
        owner = data.get("ownerSlug") or data.get("owner_slug") or owner_slug_for(url)
        return cls(owner_slug=owner, url=url)


@dataclass(frozen=True)
class JobResult:
    ok: bool
    run_id: str
    manifest_path: str

    def as_dict(self) -> dict:
        return {"ok": self.ok, "runId": self.run_id, "manifestPath": self.manifest_path}


@dataclass
class PageCapsule:
    envelope: dict
    status: str
    schema_errors: list
    inferred_count: int
    block_count: int
    parse_error_count: int


def owner_slug_for(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host.replace(".", "-")


def detect_lang(text: str) -> str:
    try:
        return detect(text) if text and text.strip() else "und"
    except LangDetectException:
        return "und"


def primary_seed(blocks) -> dict:
    """First block of a known type family, else the first block."""
    for block in blocks:
        if type_family(block.data.get("@type")):
            return block.data
    return blocks[0].data if blocks else {}


def snapshot_name(url: str, html: str) -> str:
    parts = urlsplit(url)
    slug = re.sub(r"[^A-Za-z0-9]+", "-", parts.path or "").strip("-")[:80] or "index"
    digest = hashlib.sha1((html or "").encode("utf-8")).hexdigest()[:12]
    return f"{parts.hostname}_{slug}-{digest}.html"


class Harvester:

    def __init__(self, store, renderer_factory, settings, throttle: Optional[HostThrottle] = None,
                 validator: Optional[CapsuleValidator] = None, augmenter=None, clock=utcnow_iso):
        self.store = store
        self.renderer_factory = renderer_factory
        self.settings = settings
        self.throttle = throttle or HostThrottle.from_settings(settings)
        self.validator = validator if validator is not None else build_validator(settings)
        self.augmenter = augmenter
        self.clock = clock

        self.deterministic = settings.getbool("DETERMINISTIC_FP")
        self.single_page = settings.getbool("SINGLE_PAGE")
        self.timeout_ms = settings.getint("RENDER_TIMEOUT_MS")

    @classmethod
    def from_settings(cls, settings, store, throttle: Optional[HostThrottle] = None) -> "Harvester":
        augmenter = None
        if model_enabled(settings):
            augmenter = ModelAugmenter(settings.get("OPENAI_API_KEY"), settings.get("LLM_MODEL"))
        return cls(store, PlaywrightRenderer.factory(settings), settings,
                   throttle=throttle, augmenter=augmenter)

    # ---------------- job ----------------
    def run_job(self, job: Job) -> JobResult:
        run_id = new_run_id()
        recorder = RunRecorder(
            run_id, job.owner_slug, job.url, settings_snapshot(self.settings),
            runs_dir=self.settings.get("RUNS_DIR"), log_path=self.settings.get("CRAWL_LOG_PATH"),
            clock=self.clock,
        )
        logger.info(f"[JOB] {job.owner_slug} {job.url} run={run_id}")

        with recorder:
            node_id = self.store.upsert_node(job.owner_slug, job.url)
            recorder.node["id"] = node_id
            contents = []
            with self.renderer_factory() as renderer:
                self.crawl(job, node_id, renderer, recorder, contents)
            recorder.node["category"] = self.classify_node(node_id, contents, recorder)

        s = recorder.summary
        logger.info(f"[DONE] {s['pages']} pages / {s['inserted']} capsules "
                    f"({s['inferred']} inferred, {s['errors']} errors) for {job.url}")
        return JobResult(ok=True, run_id=run_id, manifest_path=str(recorder.manifest_path))

    def crawl(self, job: Job, node_id, renderer, recorder: RunRecorder, contents: list):
        frontier = Frontier(
            job.url,
            max_depth=self.settings.getint("MAX_DEPTH"),
            max_pages=self.settings.getint("MAX_PAGES_PER_SITE"),
            single_page=self.single_page,
        )
        for url, depth in frontier:
            if not robots_allowed(url):
                recorder.receipt(url, depth, "skipped", reason="robots")
                continue

            self.throttle.wait(url)
            captured_at = self.clock()
            try:
                page = renderer.render(url, self.timeout_ms)
            except RenderError as e:
                logger.warning(f"[RENDER] {e.kind} {url}: {e}")
                recorder.count("errors")
                recorder.error("render", e, url)
                recorder.receipt(url, depth, "error", error=e.kind)
                continue
            recorder.count("pages")
            frontier.follow_redirect(url, page.final_url)

            try:
                built = self.build_capsule(page, captured_at, recorder.run_id)
            except Exception as e:
                logger.exception(f"[PAGE] capsule build failed on {url}")
                recorder.count("errors")
                recorder.error("inference", e, url)
                recorder.receipt(url, depth, "error", error=type(e).__name__)
                built = None

            if built is not None:
                self.persist(node_id, built, captured_at, url, depth, recorder)
                contents.append(built.envelope["content"])

            if self.settings.getbool("WRITE_SNAPSHOTS"):
                self.write_snapshot(url, page.html)

            added = frontier.add_links(page_links(page.html, page.final_url or url), depth)
            logger.debug(f"[LINKS] {added} new link(s) from {url}")

    # ---------------- page ----------------
    def build_capsule(self, page, captured_at: str, run_id: str) -> PageCapsule:
        url = page.url
        extraction = extract(page.html, url, captured_at)
        seed = primary_seed(extraction.blocks)

        result = infer(url, page.html, page.visible_text, seed,
                       InferenceOptions(augmenter=self.augmenter))

        content = canonicalize(result.content) if self.deterministic else result.content
        report = {
            "jsonld": {
                "present": extraction.raw_count > 0,
                "rawCount": extraction.raw_count,
                "parsedCount": len(extraction.blocks),
                "parseErrors": len(extraction.parse_errors),
            },
            "modes": {
                "deterministic": self.deterministic,
                "model": self.augmenter is not None,
                "singlePage": self.single_page,
            },
            "lang": detect_lang(page.visible_text),
        }
        if extraction.parse_errors:
            report["jsonld"]["errors"] = extraction.parse_errors
        if result.guardrail:
            report["priceGuardrail"] = result.guardrail

        envelope = {
            "@context": CAPSULE_CONTEXT,
            "@type": CAPSULE_TYPE,
            "source": url,
            "capturedAt": captured_at,
            "runId": run_id,
        }
        if extraction.found:
            blocks = [b.as_dict() for b in extraction.blocks]
            if self.deterministic:
                blocks = [{"data": canonicalize(b["data"]), "provenance": b["provenance"]} for b in blocks]
            envelope["asserted"] = blocks
        envelope["content"] = content
        envelope["inferred"] = result.inferred_map()
        envelope["confidence"] = result.confidence
        envelope["report"] = report
        envelope["fingerprint"] = fingerprint(envelope, deterministic=self.deterministic)

        validation = self.validator.validate(envelope)
        if not validation.valid:
            report["schemaErrors"] = validation.errors
            logger.warning(f"[SCHEMA] {len(validation.errors)} violation(s) on {url}")

        return PageCapsule(
            envelope=envelope,
            status=validation.status,
            schema_errors=validation.errors,
            inferred_count=len(result.inferred_fields),
            block_count=len(extraction.blocks),
            parse_error_count=len(extraction.parse_errors),
        )

    def persist(self, node_id, built: PageCapsule, captured_at: str, url: str, depth: int,
                recorder: RunRecorder):
        recorder.count("capsules")
        if built.inferred_count:
            recorder.count("inferred")

        fp = built.envelope["fingerprint"]
        capsule_id = self.store.insert_capsule(node_id, built.envelope, fp, captured_at, built.status)
        recorder.count("inserted")
        if built.status == NEEDS_REVIEW:
            recorder.count("rejected")
            recorder.count("schemaErrors", len(built.schema_errors))

        recorder.receipt(
            url, depth, built.status,
            capsuleId=capsule_id,
            fingerprint=fp,
            blocks=built.block_count,
            parseErrors=built.parse_error_count,
            inferred=built.inferred_count,
            schemaErrors=len(built.schema_errors) or None,
        )
        logger.info(f"[PAGE] {built.status} {url} fp={fp[:19]}")

    def write_snapshot(self, url: str, html: str) -> Optional[Path]:
        out_dir = Path(self.settings.get("SNAPSHOTS_DIR"))
        path = out_dir / snapshot_name(url, html)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(html or "", encoding="utf-8")
        except OSError as e:
            logger.warning(f"[SNAPSHOT] cannot write {path}: {e}")
            return None
        return path

    # ---------------- node ----------------
    def classify_node(self, node_id, contents: list, recorder: RunRecorder) -> Optional[str]:
        try:
            category = classify(contents)
        except Exception as e:
            logger.warning(f"[CLASSIFY] node {node_id} left unclassified: {e}")
            recorder.error("classify", e)
            return None
        self.store.update_node_category(node_id, category)
        return category


def build_validator(settings) -> CapsuleValidator:
    if not settings.getbool("ENABLE_SCHEMA_VALIDATION"):
        logger.info("[SCHEMA] validation disabled by settings")
        return CapsuleValidator.disabled()
    return CapsuleValidator.from_path(schema_path(settings))
