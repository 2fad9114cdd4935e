"""
Decoding of lexicon fields that exist in two representations.

Older imports stored `forms`, `collocations`, sense `examples` and token
`feats` as JSON-encoded strings inside JSON columns; newer writes store native
structures. Readers go through `decode_json_field` once, at the boundary, and
then only deal with the tagged result. Writers go through `normalize_json_field`
so new rows are always native.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Absent:
    """No value stored (SQL NULL, JSON null or an empty string)."""


@dataclass(frozen=True)
class Decoded:
    value: Any
    legacy: bool = False


@dataclass(frozen=True)
class Malformed:
    raw: str
    reason: str


JsonField = Union[Absent, Decoded, Malformed]


def decode_json_field(raw: Any) -> JsonField:
    if raw is None:
        return Absent()
    if isinstance(raw, str):
        if not raw.strip():
            return Absent()
        try:
            return Decoded(json.loads(raw), legacy=True)
        except ValueError as exc:
            return Malformed(raw=raw, reason=str(exc))
    return Decoded(raw)


def normalize_json_field(raw: Any) -> Any | None:
    """Return the native value to store, or None when nothing valid was given."""
    field = decode_json_field(raw)
    if isinstance(field, Decoded):
        return field.value
    if isinstance(field, Malformed):
        logger.warning("Dropping malformed JSON value %r: %s", field.raw[:80], field.reason)
    return None


def as_string_list(field: JsonField) -> list[str] | None:
    if not isinstance(field, Decoded) or not isinstance(field.value, list):
        return None
    return [x for x in field.value if isinstance(x, str)]


def as_string_map(field: JsonField, *, stringify: bool = False) -> dict[str, str] | None:
    if not isinstance(field, Decoded) or not isinstance(field.value, dict):
        return None
    if stringify:
        return {str(k): str(v) for k, v in field.value.items()}
    return {str(k): v for k, v in field.value.items() if isinstance(v, str)}


def first_example_text(field: JsonField) -> str | None:
    if not isinstance(field, Decoded) or not isinstance(field.value, list) or not field.value:
        return None
    first = field.value[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    if isinstance(text, str) and text:
        return text
    return None
