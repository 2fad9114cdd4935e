"""Poem import payload and the line/token snapshot written on each ingestion."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from pydantic import AliasChoices, BaseModel, Field

from poesie_core.errors import MissingFieldsError

REQUIRED_IMPORT_FIELDS = ("content", "title", "slug")


class PoemImport(BaseModel):
    content: str | None = Field(default=None, validation_alias=AliasChoices("content", "html"))
    title: str | None = None
    slug: str | None = None
    source_url: str | None = Field(default=None, validation_alias=AliasChoices("source_url", "sourceUrl"))
    year: int | None = None
    category: str | None = None

    def require_fields(self) -> None:
        missing = [name for name in REQUIRED_IMPORT_FIELDS if not getattr(self, name)]
        if missing:
            raise MissingFieldsError(missing)


@dataclass(frozen=True)
class TokenDraft:
    start: int
    end: int
    surface: str
    lemma: str
    pos: str
    feats: dict = field(default_factory=dict)


@dataclass(frozen=True)
class LineDraft:
    index: int
    text: str
    tokens: tuple[TokenDraft, ...] = ()
    line_id: uuid.UUID | None = None


@dataclass(frozen=True)
class PoemSnapshot:
    """Complete line/token state of one poem; replaces the stored state as a whole."""

    poem_id: uuid.UUID
    lines: tuple[LineDraft, ...]

    @property
    def token_count(self) -> int:
        return sum(len(line.tokens) for line in self.lines)
