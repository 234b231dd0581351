"""Optional model-based augmentation. Best effort: any failure yields ``None``."""

import logging
from typing import Optional

import orjson
from openai import OpenAI

logger = logging.getLogger(__name__)

MODEL_CONFIDENCE = 0.55
MODEL_METHOD = "openai-json"
TRUNCATE = 6000

SYSTEM_PROMPT = (
    "You convert web pages into schema.org JSON-LD capsules. "
    "Your additions are conservative and strictly structured."
)

INSTRUCTIONS = [
    "You are filling gaps in a structured-data capsule for a web page.",
    "Rules:",
    "- Output ONLY one valid JSON object (no preamble, no comments).",
    "- Keep every field already present in the capsule; only add missing ones.",
    "- Include only fields you can infer with reasonable confidence.",
    "- Do not invent phone numbers, addresses, or prices unless visible in the text.",
]


class ModelAugmenter:

    def __init__(self, api_key: str, model: str, client=None, max_tokens: int = 800):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or OpenAI(api_key=api_key)

    def build_messages(self, url: str, markup: str, text: str, seed: dict) -> list:
        prompt = "\n".join(INSTRUCTIONS + [
            "",
            f"URL: {url}",
            "Existing capsule (may be partial):",
            orjson.dumps(seed, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS).decode(),
            "",
            "Return JSON only.",
        ])
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
            {"role": "user", "content": f"Visible text (first {TRUNCATE} chars):\n{(text or '')[:TRUNCATE]}"},
            {"role": "user", "content": f"HTML (first {TRUNCATE} chars):\n{(markup or '')[:TRUNCATE]}"},
        ]

    def try_augment(self, url: str, markup: str, text: str, seed: dict) -> Optional[dict]:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                max_tokens=self.max_tokens,
                messages=self.build_messages(url, markup, text, seed),
                response_format={"type": "json_object"},
            )
            raw = resp.choices[0].message.content
            parsed = orjson.loads(raw or "")
        except Exception as e:
            logger.warning(f"[MODEL] augmentation skipped for {url}: {e}")
            return None

        if not isinstance(parsed, dict):
            logger.warning(f"[MODEL] non-object response for {url}")
            return None
        return parsed
