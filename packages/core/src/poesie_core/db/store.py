"""
Persistence port for poems and the lexicon.

The ingest service and the API only talk to storage through `PoemStore`; the
SQLAlchemy implementation below keeps each poem's replace-all inside a single
transaction so readers never see new lines with old tokens (or the reverse).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from poesie_core.db.enums import AuditAction
from poesie_core.db.models import AuditLog, Lexeme, Line, Poem, Sense, Token, Translation
from poesie_core.errors import PoemNotFoundError, StaleSnapshotError
from poesie_core.hashing import content_hash
from poesie_core.lexicon.card import LexemeBundle, TokenContext
from poesie_core.poems import LineDraft, PoemImport, PoemSnapshot, TokenDraft


@dataclass(frozen=True)
class PoemView:
    poem: Poem
    lines: list[Line]
    tokens: list[Token]


class PoemStore(Protocol):
    def import_poem(self, payload: PoemImport, snapshot: PoemSnapshot, *, actor: str) -> uuid.UUID: ...

    def load_snapshot(self, poem_id: uuid.UUID) -> PoemSnapshot | None: ...

    def replace_tokens(self, snapshot: PoemSnapshot, *, actor: str) -> None: ...

    def read_poem(self, slug: str) -> PoemView | None: ...

    def find_lexeme(self, lemma: str, pos: str) -> LexemeBundle | None: ...

    def find_token(self, token_id: uuid.UUID) -> TokenContext | None: ...

    def representative_token(self, lemma: str, pos: str) -> TokenContext | None: ...


class SqlPoemStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def import_poem(self, payload: PoemImport, snapshot: PoemSnapshot, *, actor: str) -> uuid.UUID:
        with self._session_factory() as session, session.begin():
            poem = _upsert_poem(session, payload, poem_id=snapshot.poem_id)
            session.execute(delete(Token).where(Token.poem_id == poem.poem_id))
            session.execute(delete(Line).where(Line.poem_id == poem.poem_id))
            for draft in snapshot.lines:
                line = Line(line_id=uuid.uuid4(), poem_id=poem.poem_id, order_index=draft.index, text=draft.text)
                session.add(line)
                session.add_all(_token_rows(poem.poem_id, line.line_id, draft.tokens))
            session.add(
                AuditLog(
                    actor=actor,
                    action=AuditAction.import_,
                    entity=f"Poem:{poem.slug}",
                    meta={
                        "lines": len(snapshot.lines),
                        "tokens": snapshot.token_count,
                        "content_hash": poem.content_hash,
                    },
                )
            )
            return poem.poem_id

    def load_snapshot(self, poem_id: uuid.UUID) -> PoemSnapshot | None:
        with self._session_factory() as session:
            if session.get(Poem, poem_id) is None:
                return None
            rows = session.execute(
                select(Line).where(Line.poem_id == poem_id).order_by(Line.order_index)
            ).scalars().all()
            return PoemSnapshot(
                poem_id=poem_id,
                lines=tuple(LineDraft(index=r.order_index, text=r.text, line_id=r.line_id) for r in rows),
            )

    def replace_tokens(self, snapshot: PoemSnapshot, *, actor: str) -> None:
        with self._session_factory() as session, session.begin():
            # Row lock: writers in other processes wait until this transaction ends.
            poem = session.execute(
                select(Poem).where(Poem.poem_id == snapshot.poem_id).with_for_update()
            ).scalar_one_or_none()
            if poem is None:
                raise PoemNotFoundError(snapshot.poem_id)
            stored_ids = set(session.execute(select(Line.line_id).where(Line.poem_id == poem.poem_id)).scalars())
            snapshot_ids = {line.line_id for line in snapshot.lines}
            if stored_ids != snapshot_ids:
                raise StaleSnapshotError(poem.poem_id)
            session.execute(delete(Token).where(Token.poem_id == poem.poem_id))
            for draft in snapshot.lines:
                session.add_all(_token_rows(poem.poem_id, draft.line_id, draft.tokens))
            session.add(
                AuditLog(
                    actor=actor,
                    action=AuditAction.reannotate,
                    entity=f"Poem:{poem.slug}",
                    meta={"tokens": snapshot.token_count},
                )
            )

    def read_poem(self, slug: str) -> PoemView | None:
        with self._session_factory() as session:
            poem = session.execute(select(Poem).where(Poem.slug == slug)).scalar_one_or_none()
            if poem is None:
                return None
            lines = session.execute(
                select(Line).where(Line.poem_id == poem.poem_id).order_by(Line.order_index)
            ).scalars().all()
            tokens = session.execute(
                select(Token)
                .join(Line, Line.line_id == Token.line_id)
                .where(Token.poem_id == poem.poem_id)
                .order_by(Line.order_index, Token.start_char)
            ).scalars().all()
            return PoemView(poem=poem, lines=list(lines), tokens=list(tokens))

    def find_lexeme(self, lemma: str, pos: str) -> LexemeBundle | None:
        with self._session_factory() as session:
            lexeme = session.execute(
                select(Lexeme).where(Lexeme.lemma == lemma, Lexeme.pos == pos)
            ).scalar_one_or_none()
            if lexeme is None:
                return None
            senses = session.execute(
                select(Sense).where(Sense.lexeme_id == lexeme.lexeme_id).order_by(Sense.order_index, Sense.sense_id)
            ).scalars().all()
            translations = session.execute(
                select(Translation).where(Translation.lexeme_id == lexeme.lexeme_id).order_by(Translation.lang)
            ).scalars().all()
            return LexemeBundle(lexeme=lexeme, senses=tuple(senses), translations=tuple(translations))

    def find_token(self, token_id: uuid.UUID) -> TokenContext | None:
        with self._session_factory() as session:
            token = session.get(Token, token_id)
            return _token_context(token) if token is not None else None

    def representative_token(self, lemma: str, pos: str) -> TokenContext | None:
        with self._session_factory() as session:
            token = session.execute(
                select(Token).where(Token.lemma == lemma, Token.pos == pos).order_by(Token.token_id).limit(1)
            ).scalar_one_or_none()
            return _token_context(token) if token is not None else None


def _upsert_poem(session: Session, payload: PoemImport, *, poem_id: uuid.UUID) -> Poem:
    content = payload.content or ""
    poem = session.execute(
        select(Poem).where(Poem.slug == payload.slug).with_for_update()
    ).scalar_one_or_none()
    # A first insert races only on the unique slug; the loser fails with IntegrityError.
    if poem is None:
        poem = Poem(
            poem_id=poem_id,
            slug=payload.slug,
            title=payload.title,
            source_url=payload.source_url,
            year=payload.year,
            category=payload.category,
            content=content,
            content_hash=content_hash(content),
        )
        session.add(poem)
        session.flush()
        return poem

    # Optional metadata left out of a re-import keeps its stored value.
    poem.title = payload.title
    if payload.source_url is not None:
        poem.source_url = payload.source_url
    if payload.year is not None:
        poem.year = payload.year
    if payload.category is not None:
        poem.category = payload.category
    poem.content = content
    poem.content_hash = content_hash(content)
    poem.updated_at = datetime.utcnow()
    session.flush()
    return poem


def _token_rows(poem_id: uuid.UUID, line_id: uuid.UUID, drafts: tuple[TokenDraft, ...]) -> list[Token]:
    return [
        Token(
            token_id=uuid.uuid4(),
            poem_id=poem_id,
            line_id=line_id,
            start_char=d.start,
            end_char=d.end,
            surface=d.surface,
            lemma=d.lemma,
            pos=d.pos,
            feats=dict(d.feats),
        )
        for d in drafts
    ]


def _token_context(token: Token) -> TokenContext:
    return TokenContext(surface=token.surface, lemma=token.lemma, pos=token.pos, feats=token.feats)
