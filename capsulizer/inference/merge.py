"""
merge(asserted, inferred, overwrite_explicit=False)
---------------------------------------------------
Explicit (asserted) structured data wins over inferred values unless the
asserted value is empty or ``overwrite_explicit`` is set. Provenance is
union-merged and averaged into one confidence score.
"""

import copy
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_CONTEXT = "https://schema.org"
DEFAULT_TYPE = "Thing"


@dataclass
class MergeResult:
    content: dict
    provenance: dict = field(default_factory=dict)
    confidence: Optional[float] = None


def is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


def _value_of(item):
    # InferredField or a bare value
    return getattr(item, "value", item)


def _provenance_of(item) -> Optional[dict]:
    prov = getattr(item, "provenance", None)
    return prov() if callable(prov) else None


def merge(asserted: Optional[Mapping] = None, inferred: Optional[Mapping] = None,
          overwrite_explicit: bool = False, provenance: Optional[Mapping] = None) -> MergeResult:
    orig = dict(asserted) if isinstance(asserted, Mapping) else {}
    inf = dict(inferred) if isinstance(inferred, Mapping) else {}

    out = copy.deepcopy(orig)
    prov = dict(provenance or {})

    for key, item in inf.items():
        if is_empty(orig.get(key)) or overwrite_explicit:
            out[key] = copy.deepcopy(_value_of(item))
        p = _provenance_of(item)
        if p is not None and key not in prov:
            prov[key] = p

    if is_empty(out.get("@context")):
        out["@context"] = DEFAULT_CONTEXT
    if is_empty(out.get("@type")):
        out["@type"] = DEFAULT_TYPE

    confidences = [float(p["confidence"]) for p in prov.values()
                   if isinstance(p, Mapping) and isinstance(p.get("confidence"), (int, float))]
    confidence = round(sum(confidences) / len(confidences), 2) if confidences else None

    return MergeResult(content=out, provenance=prov, confidence=confidence)
