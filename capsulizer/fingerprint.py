import hashlib

from .canonical import canonicalize, dumps_canonical, sort_keys

ALGORITHM = "sha256"

# envelope fields that change between runs without changing the content
VOLATILE_KEYS = ("capturedAt", "runId", "manifestPath", "fingerprint", "report")


def stable_view(envelope: dict, deterministic: bool = True) -> dict:
    order = canonicalize if deterministic else sort_keys
    view = {k: v for k, v in envelope.items() if k not in VOLATILE_KEYS}

    asserted = view.get("asserted")
    if asserted:
        stripped = []
        for block in asserted:
            block = dict(block)
            prov = {k: v for k, v in (block.get("provenance") or {}).items() if k != "capturedAt"}
            block["provenance"] = prov
            stripped.append(block)
        view["asserted"] = order(stripped)

    if "content" in view:
        view["content"] = order(view["content"])
    return sort_keys(view)


def fingerprint(envelope: dict, deterministic: bool = True) -> str:
    digest = hashlib.sha256(dumps_canonical(stable_view(envelope, deterministic))).hexdigest()
    return f"{ALGORITHM}:{digest}"
