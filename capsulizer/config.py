"""
Settings loading: module defaults from ``capsulizer.settings`` with
environment overrides on top, exposed as a ``scrapy.settings.Settings``.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from scrapy.settings import Settings

# keys that may be overridden from the environment
ENV_KEYS = (
    "CONCURRENCY",
    "JOB_ATTEMPTS",
    "USER_AGENT",
    "PER_HOST_DELAY_MS",
    "MAX_DEPTH",
    "MAX_PAGES_PER_SITE",
    "SINGLE_PAGE",
    "RENDER_TIMEOUT_MS",
    "DETERMINISTIC_FP",
    "ENABLE_LLM",
    "LLM_MODEL",
    "OPENAI_API_KEY",
    "ENABLE_SCHEMA_VALIDATION",
    "SCHEMA_PATH",
    "WRITE_SNAPSHOTS",
    "DB_PATH",
    "RUNS_DIR",
    "SNAPSHOTS_DIR",
    "CRAWL_LOG_PATH",
    "LOG_LEVEL",
)

BUNDLED_SCHEMA = Path(__file__).parent / "schemas" / "capsule.schema.json"

BOOL_KEYS = ("SINGLE_PAGE", "DETERMINISTIC_FP", "ENABLE_LLM", "ENABLE_SCHEMA_VALIDATION", "WRITE_SNAPSHOTS")
TRUTHY = ("1", "true", "yes", "on", "y")
FALSY = ("0", "false", "no", "off", "n")


def env_bool(key: str, val: str) -> bool:
    """yes/no, on/off, true/false, 1/0 (any case); anything else is a config error."""
    v = str(val).strip().lower()
    if v in TRUTHY:
        return True
    if v in FALSY:
        return False
    raise ValueError(f"{key}: expected a boolean (true/false, yes/no, on/off, 1/0), got {val!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    settings = Settings()
    settings.setmodule("capsulizer.settings", priority="project")

    env = os.environ if environ is None else environ
    for key in ENV_KEYS:
        val = env.get(key)
        if val is not None and str(val).strip() != "":
            if key in BOOL_KEYS:
                val = env_bool(key, val)
            settings.set(key, val, priority="cmdline")

    for key, val in overrides.items():
        settings.set(key.upper(), val, priority="cmdline")

    # single-page mode pins the page budget
    if settings.getbool("SINGLE_PAGE"):
        settings.set("MAX_PAGES_PER_SITE", 1, priority="cmdline")
    return settings


def schema_path(settings: Settings) -> Path:
    custom = (settings.get("SCHEMA_PATH") or "").strip()
    return Path(custom) if custom else BUNDLED_SCHEMA


def model_enabled(settings: Settings) -> bool:
    return settings.getbool("ENABLE_LLM") and bool((settings.get("OPENAI_API_KEY") or "").strip())


def settings_snapshot(settings: Settings) -> dict:
    """Effective settings recorded in the run manifest (credential omitted)."""
    return {
        "concurrency": settings.getint("CONCURRENCY"),
        "userAgent": settings.get("USER_AGENT"),
        "perHostDelayMs": settings.getint("PER_HOST_DELAY_MS"),
        "maxDepth": settings.getint("MAX_DEPTH"),
        "maxPagesPerSite": settings.getint("MAX_PAGES_PER_SITE"),
        "singlePage": settings.getbool("SINGLE_PAGE"),
        "renderTimeoutMs": settings.getint("RENDER_TIMEOUT_MS"),
        "deterministicFingerprint": settings.getbool("DETERMINISTIC_FP"),
        "modelEnabled": settings.getbool("ENABLE_LLM"),
        "modelConfigured": model_enabled(settings),
        "llmModel": settings.get("LLM_MODEL"),
        "writeSnapshots": settings.getbool("WRITE_SNAPSHOTS"),
        "schemaValidation": settings.getbool("ENABLE_SCHEMA_VALIDATION"),
    }
