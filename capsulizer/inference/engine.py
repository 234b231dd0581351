"""
Inference engine
----------------
Heuristics first, then an optional model pass that may only fill keys
nobody else filled, then the explicit-wins merge and the price guardrail.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .heuristics import (
    InferredField, TypeGuess, detect_type, has_strong_commerce_intent,
    norm_text, parse_amount, parse_price, run_heuristics,
)
from .merge import is_empty, merge
from .model import MODEL_CONFIDENCE, MODEL_METHOD

logger = logging.getLogger(__name__)

TINY_PRICE_THRESHOLD = 5.00


@dataclass
class InferenceOptions:
    overwrite_explicit: bool = False
    augmenter: Optional[object] = None   # anything with try_augment(url, markup, text, seed)


@dataclass
class InferenceResult:
    content: dict
    inferred_fields: dict = field(default_factory=dict)
    type_guess: TypeGuess = field(default_factory=TypeGuess)
    provenance: dict = field(default_factory=dict)
    confidence: Optional[float] = None
    guardrail: Optional[dict] = None

    def inferred_map(self) -> dict:
        return {k: f.as_dict() for k, f in self.inferred_fields.items()}


def infer(url: str, markup: str, visible_text: str, asserted_seed: Optional[dict] = None,
          options: Optional[InferenceOptions] = None) -> InferenceResult:
    opts = options or InferenceOptions()
    seed = asserted_seed if isinstance(asserted_seed, dict) else {}
    text = norm_text(visible_text)

    guess = detect_type(text)
    fields = run_heuristics(markup or "", text, seed, guess)

    if opts.augmenter is not None:
        provisional = merge(seed, fields).content
        extra = opts.augmenter.try_augment(url, markup or "", text, provisional)
        for key, value in (extra or {}).items():
            if key.startswith("@") or key in fields or key in seed or is_empty(value):
                continue
            fields[key] = InferredField(key, value, MODEL_CONFIDENCE, "model", MODEL_METHOD)

    merged = merge(seed, fields, overwrite_explicit=opts.overwrite_explicit)
    content = merged.content
    note = apply_price_guardrail(content, text)
    if note:
        logger.info(f"[GUARD] dropped price {note['removed']} on {url} ({note['reason']})")

    return InferenceResult(
        content=content,
        inferred_fields=fields,
        type_guess=guess,
        provenance=merged.provenance,
        confidence=merged.confidence,
        guardrail=note,
    )


def normalize_price(content: dict) -> None:
    """'$49.99' -> price '49.99' + priceCurrency 'USD' (asserted currency kept)."""
    price = content.get("price")
    if not isinstance(price, str):
        return
    parsed = parse_price(price)
    if parsed:
        content["price"] = parsed[0]
        if is_empty(content.get("priceCurrency")):
            content["priceCurrency"] = parsed[1]


def price_value(price) -> Optional[float]:
    if isinstance(price, bool):
        return None
    if isinstance(price, (int, float)):
        return float(price)
    if isinstance(price, str):
        amount = parse_amount(price.strip())
        return float(amount) if amount is not None else None
    return None


def apply_price_guardrail(content: dict, text: str = "") -> Optional[dict]:
    """
    Normalizes the resolved price, then drops a tiny positive price on a
    page without strong commerce intent. Returns the report note when a
    price was removed.
    """
    normalize_price(content)
    value = price_value(content.get("price"))
    if value is None or not (0 < value < TINY_PRICE_THRESHOLD):
        return None
    if has_strong_commerce_intent(norm_text(text)):
        return None

    removed = content.pop("price")
    content.pop("priceCurrency", None)
    return {"field": "price", "removed": removed, "reason": "tiny_price", "threshold": TINY_PRICE_THRESHOLD}
