"""
Pattern-based field detection over the visible text and raw markup of a page.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from ..extractor import meta_content, page_title

THING = "Thing"
PRODUCT = "Product"
ORGANIZATION = "Organization"
ARTICLE = "Article"

COMMERCE = "commerce"
ORGANIZATION_FAMILY = "organization"
EDITORIAL = "editorial"

FAMILY_TYPES = {
    COMMERCE: {
        "Product", "ProductGroup", "ProductModel", "IndividualProduct",
        "Offer", "AggregateOffer", "Vehicle",
    },
    ORGANIZATION_FAMILY: {
        "Organization", "LocalBusiness", "Corporation", "Store", "Restaurant",
        "ProfessionalService", "FoodEstablishment", "HomeAndConstructionBusiness",
        "AutomotiveBusiness", "MedicalBusiness", "LegalService", "FinancialService",
        "HealthAndBeautyBusiness", "EducationalOrganization", "NGO",
    },
    EDITORIAL: {
        "Article", "NewsArticle", "BlogPosting", "Blog", "Report",
        "ScholarlyArticle", "TechArticle", "OpinionNewsArticle", "AnalysisNewsArticle",
    },
}
GUESS_FAMILY = {PRODUCT: COMMERCE, ORGANIZATION: ORGANIZATION_FAMILY, ARTICLE: EDITORIAL}

PRODUCT_INDICATORS = [
    "add to cart", "buy now", "sku", "specifications", "in stock",
    "price", "was", "sale", "checkout",
]
ORG_INDICATORS = [
    "about us", "our team", "contact us", "headquarters", "mission",
    "careers", "phone", "address", "hours",
]
ARTICLE_INDICATORS = [
    "by ", "author", "published", "updated", "read more", "minutes read", "newsletter",
]

STRONG_COMMERCE = [
    "add to cart", "checkout", "buy now", "shop now", "order now",
    "shipping", "returns", "size", "color", "quantity",
    "in stock", "out of stock", "variants", "select size", "select color",
]

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "C$": "CAD", "A$": "AUD"}

_AMOUNT = r"(\d{1,3}(?:[.,]\d{3})*(?:[.,]\d{2})?|\d+(?:[.,]\d{2})?)"
PRICE_RE = re.compile(
    r"(?:\b(?:USD|EUR|GBP|JPY|CAD|AUD))?\s*(C\$|A\$|[$€£¥])\s?" + _AMOUNT + r"(?!\d)"
    r"|\b(USD|EUR|GBP|JPY|CAD|AUD)\b\s?" + _AMOUNT + r"(?!\d)",
    re.I,
)
THOUSANDS_RE = re.compile(r"[.,](?=\d{3}(?!\d))")
SKU_RE = re.compile(r"\b(?:SKU|Part\s*(?:No\.?|Number))\s*[:#]?\s*([A-Z0-9\-_/]{3,})\b", re.I)
BRAND_LINE_RE = re.compile(r"\bBrand:\s*([A-Za-z0-9&\- ]{2,60}?)(?=\s{2,}|[.,;|]|$|\s+[A-Z][a-z]+:)")
EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.I)
PHONE_RE = re.compile(r"(?:\+?\d{1,3}[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}")
ADDRESS_RE = re.compile(
    r"\b(\d{1,6}\s+[A-Za-z0-9.\- ]+?)\s*,\s*([A-Za-z.\- ]+?),\s*([A-Z]{2})\s*(\d{5}(?:-\d{4})?)\b"
)
PUBLISHED_RE = re.compile(
    r"\b(?:Published|Posted|Updated)\s*[:\-]?\s*([A-Z][a-z]{2,}\.?\s+\d{1,2},\s+\d{4}|\d{4}-\d{2}-\d{2})",
    re.I,
)
BYLINE_RE = re.compile(
    r"\b[Bb]y\s+([A-Z][A-Za-z.\-']+(?:\s+(?!Published|Posted|Updated|On\b)[A-Z][A-Za-z.\-']+){0,2})"
)
TITLE_SUFFIX_RE = re.compile(r"\s*\|\s*[^|]+$")


@dataclass(frozen=True)
class InferredField:
    key: str
    value: object
    confidence: float
    source: str = "heuristic"
    method: str = ""

    def provenance(self) -> dict:
        return {"confidence": self.confidence, "source": self.source, "method": self.method}

    def as_dict(self) -> dict:
        return {"value": self.value, **self.provenance()}


@dataclass
class TypeGuess:
    type: str = THING
    confidence: float = 0.0
    scores: dict = field(default_factory=dict)


def clamp(n: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, n))


def norm_text(s: Optional[str]) -> str:
    return " ".join((s or "").split())


def short_type(value) -> str:
    """'http://schema.org/Product' / 'schema:Product' / ['Product'] -> 'Product'"""
    if isinstance(value, (list, tuple)):
        for v in value:
            t = short_type(v)
            if type_family(t):
                return t
        return short_type(value[0]) if value else ""
    if not isinstance(value, str):
        return ""
    return re.split(r"[/:#]", value.strip())[-1]


def type_family(value) -> Optional[str]:
    t = short_type(value)
    for family, types in FAMILY_TYPES.items():
        if t in types:
            return family
    return None


# ---------------- type detection ----------------
def indicator_score(text: str, indicators) -> int:
    t = text.lower()
    score = 0
    for ind in indicators:
        score += len(re.findall(r"\b" + re.escape(ind.lower()) + r"\b", t))
    return score


def detect_type(text: str) -> TypeGuess:
    prod = indicator_score(text, PRODUCT_INDICATORS)
    org = indicator_score(text, ORG_INDICATORS)
    art = indicator_score(text, ARTICLE_INDICATORS)
    best = max(prod, org, art)

    guess = THING
    if best > 0:
        if best == prod:
            guess = PRODUCT
        elif best == org:
            guess = ORGANIZATION
        else:
            guess = ARTICLE

    share = clamp(best / max(6, prod + org + art))
    return TypeGuess(type=guess, confidence=share, scores={"commerce": prod, "organization": org, "editorial": art})


def type_confidence(guess: TypeGuess) -> float:
    return round(clamp(0.65 + 0.3 * guess.confidence), 2)


def has_strong_commerce_intent(text: str, minimum: int = 2) -> bool:
    t = text.lower()
    hits = {token for token in STRONG_COMMERCE if token in t}
    return len(hits) >= minimum


# ---------------- field extractors ----------------
def parse_amount(raw: str) -> Optional[str]:
    cleaned = THOUSANDS_RE.sub("", raw).replace(",", ".")
    try:
        return f"{float(cleaned):.2f}"
    except ValueError:
        return None


def parse_price(text: str) -> Optional[tuple]:
    """(amount, ISO currency) for the first currency-marked amount, else None."""
    m = PRICE_RE.search(text or "")
    if not m:
        return None
    sym, amount1, code, amount2 = m.groups()
    amount = parse_amount(amount1 or amount2 or "")
    currency = code.upper() if code else CURRENCY_SYMBOLS.get((sym or "").upper())
    if amount is None or not currency:
        return None
    return amount, currency


def extract_sku(text: str) -> Optional[str]:
    m = SKU_RE.search(text)
    return m.group(1) if m else None


def extract_brand(text: str, markup: str) -> Optional[str]:
    m = BRAND_LINE_RE.search(text)
    if m and m.group(1).strip():
        return m.group(1).strip()

    meta_brand = meta_content(markup, "brand", "product:brand", "og:brand")
    if meta_brand:
        return meta_brand

    title = page_title(markup)
    if title and "|" in title:
        parts = [p.strip() for p in title.split("|")]
        if len(parts) > 1 and parts[1]:
            return parts[1]
    return None


def extract_contacts(text: str) -> tuple:
    emails, phones = [], []
    for e in EMAIL_RE.findall(text):
        e = e.lower()
        if e not in emails:
            emails.append(e)
    for p in PHONE_RE.findall(text):
        p = p.strip()
        if p not in phones:
            phones.append(p)
    return emails, phones


def extract_address(text: str) -> Optional[dict]:
    m = ADDRESS_RE.search(text)
    if not m:
        return None
    street, city, region, postal = m.groups()
    return {
        "@type": "PostalAddress",
        "streetAddress": street.strip(),
        "addressLocality": city.strip(),
        "addressRegion": region,
        "postalCode": postal,
    }


def extract_publish_dates(text: str, markup: str) -> tuple:
    m = PUBLISHED_RE.search(text)
    published = m.group(1) if m else meta_content(markup, "article:published_time", "pubdate", "datePublished")
    modified = meta_content(markup, "article:modified_time", "updated", "dateModified")
    return published, modified


def extract_byline(text: str) -> Optional[str]:
    m = BYLINE_RE.search(text)
    return m.group(1).strip() if m else None


def title_name(markup: str) -> Optional[str]:
    title = page_title(markup)
    if not title:
        return None
    name = TITLE_SUFFIX_RE.sub("", title).strip()
    return name or title


def run_heuristics(markup: str, text: str, seed: dict, guess: TypeGuess) -> dict:
    """
    Heuristic pass. Returns key -> InferredField, conditioned on the resolved
    type family (asserted type wins over the guess).
    """
    fields = {}

    def put(key, value, confidence, method):
        fields[key] = InferredField(key, value, round(clamp(confidence), 2), "heuristic", method)

    asserted_type = seed.get("@type")
    asserted_family = type_family(asserted_type) if asserted_type else None
    if asserted_type:
        family = asserted_family
    else:
        family = GUESS_FAMILY.get(guess.type)
        if guess.type != THING:
            put("@type", guess.type, type_confidence(guess), "type-detection")

    if family == COMMERCE:
        # price only on pages that really sell something
        allow_price = asserted_family == COMMERCE or (
            not asserted_type and guess.type == PRODUCT and has_strong_commerce_intent(text)
        )
        if allow_price:
            p = parse_price(text)
            if p:
                put("price", p[0], 0.8, "price-regex")
                put("priceCurrency", p[1], 0.7, "currency-map")
        sku = extract_sku(text)
        if sku:
            put("sku", sku, 0.7, "sku-regex")
        brand = extract_brand(text, markup)
        if brand:
            put("brand", brand, 0.75, "brand-heuristic")

    elif family == ORGANIZATION_FAMILY:
        emails, phones = extract_contacts(text)
        if emails:
            put("email", emails[0], 0.85, "email-regex")
        if phones:
            put("telephone", phones[0], 0.8, "phone-regex")
        addr = extract_address(text)
        if addr:
            put("address", addr, 0.7, "address-regex")

    elif family == EDITORIAL:
        published, modified = extract_publish_dates(text, markup)
        if published:
            put("datePublished", published, 0.8, "date-meta")
        if modified:
            put("dateModified", modified, 0.7, "date-meta")
        author = extract_byline(text)
        if author:
            put("author", author, 0.65, "byline-regex")

    if not seed.get("name"):
        name = title_name(markup)
        if name:
            put("name", name, 0.6, "title-fallback")
    if not seed.get("description"):
        desc = meta_content(markup, "description", "og:description")
        if desc:
            put("description", norm_text(desc), 0.65, "meta-description")

    return fields
