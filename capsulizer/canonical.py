"""
Deterministic ordering of structured-data trees.

Mappings get alphabetically sorted keys, sequences get their elements
sorted by the lexical order of each element's canonical serialization.
Two trees that differ only in key order or element order canonicalize
to the same value.
"""

from collections.abc import Mapping

import orjson

DUMP_OPTS = orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS


def dumps_canonical(value) -> bytes:
    return orjson.dumps(value, option=DUMP_OPTS)


def canonicalize(value):
    if isinstance(value, Mapping):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=dumps_canonical)
    return value


def sort_keys(value):
    """Key ordering only; sequence order is preserved."""
    if isinstance(value, Mapping):
        return {str(k): sort_keys(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [sort_keys(v) for v in value]
    return value
