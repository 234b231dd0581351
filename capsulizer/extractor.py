"""
JSON-LD extraction with provenance.

Every ``<script type="application/ld+json">`` block is parsed strictly.
Blocks that fail to parse are reported, never raised. Parsed values
(object, array, or ``@graph`` container) are flattened into a list of
plain objects, each wrapped with the provenance of the snippet it came
from.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

import orjson
from scrapy import Selector

logger = logging.getLogger(__name__)

JSONLD_SELECTOR = "script[type='application/ld+json']"
EVIDENCE_TYPE = "jsonld-script"
SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")


@dataclass(frozen=True)
class AssertedBlock:
    data: dict
    provenance: dict

    def as_dict(self) -> dict:
        return {"data": self.data, "provenance": self.provenance}


@dataclass
class ExtractionResult:
    found: bool = False
    blocks: list = field(default_factory=list)
    raw_count: int = 0
    parse_errors: list = field(default_factory=list)

    @property
    def unparsable(self) -> bool:
        return self.raw_count > 0 and not self.found


def sha256_hex(raw: str) -> str:
    return hashlib.sha256((raw or "").encode("utf-8")).hexdigest()


def flatten_jsonld(parsed) -> list:
    out = []
    if isinstance(parsed, list):
        for item in parsed:
            out.extend(flatten_jsonld(item))
        return out
    if not isinstance(parsed, dict):
        return out

    graph = parsed.get("@graph")
    if isinstance(graph, list):
        # keep the wrapper only when it says something besides the graph
        if any(k not in ("@context", "@graph") for k in parsed):
            out.append({k: v for k, v in parsed.items() if k != "@graph"})
        for g in graph:
            out.extend(flatten_jsonld(g))
        return out

    out.append(parsed)
    return out


def extract(markup: str, source_url: str, captured_at: str) -> ExtractionResult:
    sel = Selector(text=markup or "")
    scripts = sel.css(JSONLD_SELECTOR)
    result = ExtractionResult(raw_count=len(scripts))

    for i, script in enumerate(scripts):
        raw = "".join(script.xpath("text()").getall()).strip()
        if not raw:
            continue
        try:
            parsed = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            result.parse_errors.append({"index": i, "message": f"Invalid JSON: {e}"})
            continue

        snippet_hash = f"sha256:{sha256_hex(raw)}"
        for obj in flatten_jsonld(parsed):
            result.blocks.append(AssertedBlock(
                data=obj,
                provenance={
                    "sourceUrl": source_url,
                    "capturedAt": captured_at,
                    "evidenceType": EVIDENCE_TYPE,
                    "scriptIndex": i,
                    "selector": JSONLD_SELECTOR,
                    "snippetHash": snippet_hash,
                },
            ))

    result.found = bool(result.blocks)
    if result.unparsable:
        logger.warning(f"[JSONLD] {result.raw_count} block(s) present but none parsed on {source_url}")
    return result


# ---------------- page helpers ----------------
def page_links(markup: str, base_url: str) -> list:
    sel = Selector(text=markup or "")
    links = []
    for href in sel.css("a::attr(href)").getall():
        href = (href or "").strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIP_SCHEMES):
            continue
        links.append(urljoin(base_url, href))
    return links


def page_title(markup: str) -> Optional[str]:
    title = Selector(text=markup or "").css("title::text").get()
    title = " ".join((title or "").split())
    return title or None


def meta_content(markup: str, *names: str) -> Optional[str]:
    """First non-empty ``content`` of a meta tag matching name/property/itemprop."""
    sel = Selector(text=markup or "")
    for name in names:
        val = sel.xpath(
            "//meta[@name=$n or @property=$n or @itemprop=$n]/@content", n=name
        ).get()
        if val and val.strip():
            return val.strip()
    return None
