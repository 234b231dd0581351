from types import SimpleNamespace

import pytest

from capsulizer.inference import InferenceOptions, apply_price_guardrail, detect_type, infer
from capsulizer.inference.heuristics import (
    extract_address, extract_byline, extract_sku, has_strong_commerce_intent, parse_price, short_type,
    type_family,
)
from capsulizer.inference.model import MODEL_CONFIDENCE, ModelAugmenter

from conftest import page_html

URL = "https://example.com/"


@pytest.mark.parametrize("text,expected", [
    ("Now only $49.99!", ("49.99", "USD")),
    ("Price: €1,234.56", ("1234.56", "EUR")),
    ("EUR 1.234,56 incl. VAT", ("1234.56", "EUR")),
    ("£5", ("5.00", "GBP")),
    ("no price here", None),
])
def test_parse_price(text, expected):
    assert parse_price(text) == expected


def test_type_helpers():
    assert short_type("http://schema.org/Product") == "Product"
    assert short_type("schema:NewsArticle") == "NewsArticle"
    assert short_type(["Thing", "LocalBusiness"]) == "LocalBusiness"
    assert type_family("Restaurant") == "organization"
    assert type_family("WebPage") is None


def test_detect_type():
    assert detect_type("Add to cart. Buy now. In stock.").type == "Product"
    assert detect_type("About us. Contact us. Our team.").type == "Organization"
    assert detect_type("").type == "Thing"


def test_field_extractors():
    assert extract_sku("SKU: W-100 in blue") == "W-100"
    assert extract_byline("By Jane Doe Published Jan 5, 2024") == "Jane Doe"
    addr = extract_address("Visit 12 Main St, Springfield, IL 62701 today")
    assert addr["postalCode"] == "62701"
    assert addr["addressRegion"] == "IL"


def test_guardrail_drops_tiny_price():
    content = {"@type": "Product", "name": "Pen", "price": 2.50, "priceCurrency": "USD"}
    note = apply_price_guardrail(content, "A nice pen for writing.")
    assert "price" not in content
    assert "priceCurrency" not in content
    assert note["reason"] == "tiny_price"
    assert note["removed"] == 2.50


def test_guardrail_keeps_tiny_price_with_commerce_intent():
    content = {"price": "2.50"}
    assert apply_price_guardrail(content, "Add to cart. Free shipping and returns.") is None
    assert content["price"] == "2.50"


def test_guardrail_normalizes_currency_string():
    content = {"price": "$49.99"}
    assert apply_price_guardrail(content) is None
    assert content == {"price": "49.99", "priceCurrency": "USD"}

    asserted = {"price": "€19.00", "priceCurrency": "CHF"}
    apply_price_guardrail(asserted)
    assert asserted == {"price": "19.00", "priceCurrency": "CHF"}


def test_strong_commerce_intent():
    assert has_strong_commerce_intent("select size, then add to cart")
    assert not has_strong_commerce_intent("free shipping")


def test_infer_asserted_wins_and_heuristics_fill():
    seed = {"@type": "Organization", "name": "Acme"}
    text = "Contact us at hello@acme.com or (555) 123-4567."
    result = infer(URL, page_html(title="Other Name"), text, seed)

    assert result.content["name"] == "Acme"
    assert result.content["email"] == "hello@acme.com"
    assert result.content["telephone"] == "(555) 123-4567"
    assert result.content["@context"] == "https://schema.org"
    assert result.inferred_fields["email"].source == "heuristic"
    assert result.inferred_fields["email"].method == "email-regex"
    assert "name" not in result.inferred_fields
    assert 0 < result.confidence <= 1


def test_infer_product_without_structured_data():
    text = "Add to cart. Buy now. In stock. $19.99 checkout"
    result = infer(URL, page_html(title="Widget | Acme"), text)

    assert result.content["@type"] == "Product"
    assert result.content["price"] == "19.99"
    assert result.content["priceCurrency"] == "USD"
    assert result.content["name"] == "Widget"
    assert result.content["brand"] == "Acme"
    assert result.inferred_map()["@type"]["method"] == "type-detection"


def test_infer_no_price_without_commerce_intent():
    result = infer(URL, page_html(), "Our price philosophy costs $3.00 of your time. Price matters.")
    assert "price" not in result.content


def test_infer_tiny_asserted_price_guardrail():
    seed = {"@type": "Product", "name": "Pen", "price": "$2.50"}
    result = infer(URL, page_html(), "A nice pen.", seed)
    assert "price" not in result.content
    assert result.guardrail["reason"] == "tiny_price"
    assert result.guardrail["removed"] == "2.50"


def test_infer_editorial_fields():
    seed = {"@type": "NewsArticle", "headline": "Rates rise"}
    text = "By Jane Doe Published: 2024-03-01 Rates rose again."
    result = infer(URL, page_html(title="Rates rise | Daily"), text, seed)
    assert result.content["author"] == "Jane Doe"
    assert result.content["datePublished"] == "2024-03-01"
    assert result.content["name"] == "Rates rise"


class StubAugmenter:
    def __init__(self, fields):
        self.fields = fields
        self.calls = 0

    def try_augment(self, url, markup, text, seed):
        self.calls += 1
        return self.fields


def test_model_fills_only_missing_keys():
    aug = StubAugmenter({"name": "Other", "@type": "Thing", "foundingDate": "1999", "telephone": ""})
    seed = {"@type": "Organization", "name": "Acme"}
    result = infer(URL, page_html(), "", seed, InferenceOptions(augmenter=aug))

    assert aug.calls == 1
    assert result.content["name"] == "Acme"
    assert result.content["@type"] == "Organization"
    assert result.content["foundingDate"] == "1999"
    assert "telephone" not in result.content
    field = result.inferred_fields["foundingDate"]
    assert field.source == "model"
    assert field.confidence == MODEL_CONFIDENCE


def test_model_failure_degrades_to_heuristics():
    result = infer(URL, page_html(), "hello@acme.com", {"@type": "Organization", "name": "Acme"},
                   InferenceOptions(augmenter=StubAugmenter(None)))
    assert result.content["email"] == "hello@acme.com"


def fake_client(content=None, error=None):
    def create(**kwargs):
        if error:
            raise error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_model_augmenter_parses_json():
    aug = ModelAugmenter("key", "gpt-4o-mini", client=fake_client('{"slogan": "Hi"}'))
    assert aug.try_augment(URL, "<html/>", "text", {}) == {"slogan": "Hi"}


def test_model_augmenter_absorbs_failures():
    assert ModelAugmenter("k", "m", client=fake_client(error=RuntimeError("429"))).try_augment(URL, "", "", {}) is None
    assert ModelAugmenter("k", "m", client=fake_client("not json")).try_augment(URL, "", "", {}) is None
    assert ModelAugmenter("k", "m", client=fake_client("[1, 2]")).try_augment(URL, "", "", {}) is None


def test_model_prompt_is_truncated():
    aug = ModelAugmenter("k", "m", client=fake_client("{}"))
    messages = aug.build_messages(URL, "x" * 10000, "y" * 10000, {"name": "Acme"})
    assert messages[0]["role"] == "system"
    assert messages[2]["content"].count("y") == 6000
    assert '"name": "Acme"' in messages[1]["content"]
