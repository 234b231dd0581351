from .engine import InferenceOptions, InferenceResult, apply_price_guardrail, infer
from .heuristics import InferredField, TypeGuess, detect_type, type_family
from .merge import MergeResult, merge

__all__ = [
    "InferenceOptions", "InferenceResult", "InferredField", "MergeResult", "TypeGuess",
    "apply_price_guardrail", "detect_type", "infer", "merge", "type_family",
]
