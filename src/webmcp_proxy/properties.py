"""
Property bag normalization.

The backend's value hydrator silently ignores a term value that carries no
property reference, so an item created with
    {"dcterms:title": [{"type": "literal", "@value": "My Item"}]}
would be stored as [untitled]. normalize_property_data() adds
property_id="auto" to such values, telling the backend to resolve the
property from the term key itself.

Only vocabulary terms (prefix:localName) are touched. Reserved relational
keys ("o:item_set") and JSON-LD keywords ("@type") pass through as-is.
"""

from typing import Any, Mapping

PROPERTY_REFERENCE_KEY = "property_id"
AUTO_REFERENCE = "auto"

# Resource types whose representations carry vocabulary term values
VOCABULARY_RESOURCES = frozenset({"items", "item_sets", "media"})


def is_vocabulary_term(key: str) -> bool:
    """True for prefix:localName keys that are neither o: nor @ keys."""
    if key.startswith("@") or key.startswith("o:"):
        return False
    return ":" in key


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Mapping) and value.get(PROPERTY_REFERENCE_KEY) is None:
        # Reference goes first; every other field is kept in order.
        normalized = {PROPERTY_REFERENCE_KEY: AUTO_REFERENCE}
        normalized.update((k, v) for k, v in value.items() if k != PROPERTY_REFERENCE_KEY)
        return normalized
    return value


def normalize_property_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a copy of a property bag where every vocabulary-term value
    record has a property reference.

    Pure and idempotent: values that already declare a reference (numeric
    or "auto") are left alone, non-list term values are copied unchanged.
    """
    result: dict[str, Any] = {}
    for key, values in data.items():
        if is_vocabulary_term(key) and isinstance(values, list):
            result[key] = [_normalize_value(v) for v in values]
        else:
            result[key] = values
    return result
