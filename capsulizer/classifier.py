"""Coarse site category from the merged content objects of every harvested page."""

from .inference.heuristics import COMMERCE, EDITORIAL, FAMILY_TYPES, ORGANIZATION_FAMILY, short_type, type_family

ECOMMERCE = "ecommerce"
MEDIA = "media"
SMB = "smb"
CORPORATE = "corporate"
LANDING = "landing"
CATEGORIES = (ECOMMERCE, MEDIA, SMB, CORPORATE, LANDING)

DEFAULT_CATEGORY = SMB

CORPORATE_TYPES = {"Corporation", "NGO", "EducationalOrganization", "GovernmentOrganization"}
CORPORATE_KEYS = ("tickerSymbol", "numberOfEmployees", "foundingDate", "subOrganization", "parentOrganization")
LOCAL_KEYS = ("telephone", "address", "openingHours", "openingHoursSpecification", "geo", "priceRange")
LOCAL_TYPES = FAMILY_TYPES[ORGANIZATION_FAMILY] - CORPORATE_TYPES - {"Organization"}


def _score(content: dict, scores: dict) -> bool:
    """Adds one page's signals to ``scores``; True when the page had any."""
    t = short_type(content.get("@type"))
    family = type_family(t)
    before = dict(scores)

    if family == COMMERCE or any(content.get(k) for k in ("price", "offers", "sku")):
        scores[ECOMMERCE] += 1
    if family == EDITORIAL or any(content.get(k) for k in ("datePublished", "author")):
        scores[MEDIA] += 1
    # a corporate signal outranks local-business keys on the same page
    if t in CORPORATE_TYPES or any(content.get(k) for k in CORPORATE_KEYS):
        scores[CORPORATE] += 1
    elif t in LOCAL_TYPES or t == "Organization" or any(content.get(k) for k in LOCAL_KEYS):
        scores[SMB] += 1
    return scores != before


def classify(contents) -> str:
    contents = [c for c in (contents or []) if isinstance(c, dict)]
    if not contents:
        return DEFAULT_CATEGORY

    scores = {ECOMMERCE: 0, MEDIA: 0, SMB: 0, CORPORATE: 0}
    signalled = sum(1 for c in contents if _score(c, scores))

    if not signalled:
        return LANDING if len(contents) == 1 else DEFAULT_CATEGORY

    best = max(scores.values())
    leaders = [cat for cat, s in scores.items() if s == best]
    return leaders[0] if len(leaders) == 1 else DEFAULT_CATEGORY
