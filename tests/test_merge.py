from capsulizer.inference import InferredField, merge


def test_asserted_wins():
    result = merge({"name": "Acme"}, {"name": "Other", "email": "x@y.com"})
    assert result.content["name"] == "Acme"
    assert result.content["email"] == "x@y.com"


def test_empty_asserted_value_is_filled():
    result = merge({"name": "  ", "sameAs": []}, {"name": "Acme", "sameAs": ["https://x"]})
    assert result.content["name"] == "Acme"
    assert result.content["sameAs"] == ["https://x"]


def test_overwrite_explicit():
    result = merge({"name": "Acme"}, {"name": "Other"}, overwrite_explicit=True)
    assert result.content["name"] == "Other"


def test_defaults_for_context_and_type():
    result = merge({}, {})
    assert result.content == {"@context": "https://schema.org", "@type": "Thing"}
    assert result.confidence is None

    kept = merge({"@context": "https://schema.org/", "@type": "Product"}, {})
    assert kept.content["@type"] == "Product"
    assert kept.content["@context"] == "https://schema.org/"


def test_provenance_and_confidence():
    inferred = {
        "email": InferredField("email", "x@y.com", 0.8, "heuristic", "email-regex"),
        "telephone": InferredField("telephone", "555", 0.6, "heuristic", "phone-regex"),
    }
    result = merge({"name": "Acme"}, inferred)
    assert result.content["email"] == "x@y.com"
    assert result.provenance["email"] == {"confidence": 0.8, "source": "heuristic", "method": "email-regex"}
    assert result.confidence == 0.7


def test_existing_provenance_is_not_replaced():
    inferred = {"email": InferredField("email", "x@y.com", 0.9, "model", "openai-json")}
    given = {"email": {"confidence": 0.5, "source": "heuristic", "method": "email-regex"}}
    result = merge({}, inferred, provenance=given)
    assert result.provenance["email"]["source"] == "heuristic"
    assert result.confidence == 0.5


def test_inputs_are_not_mutated():
    asserted = {"name": "Acme", "address": {"streetAddress": "1 Main"}}
    result = merge(asserted, {"email": "x@y.com"})
    result.content["address"]["streetAddress"] = "changed"
    assert asserted == {"name": "Acme", "address": {"streetAddress": "1 Main"}}
