"""LexemeCard: the UI-facing projection of a lexicon entry."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from poesie_core.lexicon.fields import (
    JsonField,
    Malformed,
    as_string_list,
    as_string_map,
    decode_json_field,
    first_example_text,
)

logger = logging.getLogger(__name__)


class CardAudio(BaseModel):
    us: str | None = None
    uk: str | None = None


class CardExample(BaseModel):
    text: str


class CardMorphology(BaseModel):
    surface: str
    lemma: str
    pos: str
    features: dict[str, str]


class LexemeCard(BaseModel):
    lemma: str
    pos: str
    definition: str = ""
    ipa: str | None = None
    cefr: str | None = None
    audio: CardAudio | None = None
    example: CardExample | None = None
    morphology: CardMorphology | None = None
    forms: dict[str, str] | None = None
    collocations: list[str] | None = None
    frequency: str | None = None
    etymology: str | None = None
    translations: dict[str, str] | None = None
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Absent fields are dropped so callers can tell "no data" from "empty data"."""
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True)
class TokenContext:
    surface: str
    lemma: str
    pos: str
    feats: Any = None


@dataclass(frozen=True)
class LexemeBundle:
    """A lexicon entry with its related rows, as read from storage.

    `lexeme`, `senses` and `translations` only need the attributes of the
    corresponding ORM rows, so tests can pass plain namespaces.
    """

    lexeme: Any
    senses: Sequence[Any] = field(default_factory=tuple)
    translations: Sequence[Any] = field(default_factory=tuple)


def stub_card(lemma: str, pos: str) -> LexemeCard:
    return LexemeCard(lemma=lemma, pos=pos, definition="")


def project_card(bundle: LexemeBundle, token: TokenContext | None = None) -> LexemeCard:
    lexeme = bundle.lexeme
    primary = bundle.senses[0] if bundle.senses else None

    definition = ""
    if primary is not None and _text(getattr(primary, "definition", None)):
        definition = primary.definition
    elif _text(getattr(lexeme, "definition", None)):
        definition = lexeme.definition

    example = None
    if primary is not None:
        text = first_example_text(_decode(lexeme, "examples", getattr(primary, "examples", None)))
        if text:
            example = CardExample(text=text)

    audio_us = getattr(lexeme, "audio_url_us", None)
    audio_uk = getattr(lexeme, "audio_url_uk", None)
    audio = CardAudio(us=audio_us or None, uk=audio_uk or None) if (audio_us or audio_uk) else None

    translations = {t.lang: t.text for t in bundle.translations} or None

    return LexemeCard(
        lemma=lexeme.lemma,
        pos=lexeme.pos,
        definition=definition,
        ipa=getattr(lexeme, "ipa", None),
        cefr=getattr(lexeme, "cefr", None),
        audio=audio,
        example=example,
        morphology=_morphology(token) if token is not None else None,
        forms=as_string_map(_decode(lexeme, "forms", getattr(lexeme, "forms", None))),
        collocations=as_string_list(_decode(lexeme, "collocations", getattr(lexeme, "collocations", None))),
        frequency=getattr(lexeme, "frequency", None),
        etymology=getattr(lexeme, "etymology", None),
        translations=translations,
        notes=getattr(lexeme, "notes", None),
    )


def _morphology(token: TokenContext) -> CardMorphology:
    features = as_string_map(decode_json_field(token.feats), stringify=True) or {}
    return CardMorphology(surface=token.surface, lemma=token.lemma, pos=token.pos, features=features)


def _decode(lexeme: Any, name: str, raw: Any) -> JsonField:
    decoded = decode_json_field(raw)
    if isinstance(decoded, Malformed):
        logger.debug("Ignoring malformed %s for %s/%s: %s", name, lexeme.lemma, lexeme.pos, decoded.reason)
    return decoded


def _text(value: Any) -> bool:
    return isinstance(value, str) and value != ""
