from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from poesie_core.db.base import Base
from poesie_core.db.enums import AuditAction


class Poem(Base):
    __tablename__ = "poem"

    poem_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    slug: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category: Mapped[str | None] = mapped_column(String(256), nullable=True)
    # Raw markup as submitted; lines are always re-derivable from it.
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Line(Base):
    __tablename__ = "line"

    line_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    poem_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("poem.poem_id", ondelete="CASCADE"))
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    # Empty text is a stanza break; an embedded "\n" is a soft break inside one paragraph.
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    poem: Mapped[Poem] = relationship()

    __table_args__ = (UniqueConstraint("poem_id", "order_index", name="uq_line_poem_order"),)


class Token(Base):
    __tablename__ = "token"

    token_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    poem_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("poem.poem_id", ondelete="CASCADE"))
    line_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("line.line_id", ondelete="CASCADE"))
    start_char: Mapped[int] = mapped_column(Integer, nullable=False)
    end_char: Mapped[int] = mapped_column(Integer, nullable=False)
    surface: Mapped[str] = mapped_column(String(512), nullable=False)
    lemma: Mapped[str] = mapped_column(String(512), nullable=False)
    pos: Mapped[str] = mapped_column(String(32), nullable=False)
    # Legacy rows may hold a JSON-encoded string instead of an object.
    feats: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)

    line: Mapped[Line] = relationship()

    __table_args__ = (
        Index("ix_token_poem_line", "poem_id", "line_id"),
        Index("ix_token_lemma_pos", "lemma", "pos"),
    )


class Lexeme(Base):
    __tablename__ = "lexeme"

    lexeme_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lemma: Mapped[str] = mapped_column(String(512), nullable=False)
    pos: Mapped[str] = mapped_column(String(32), nullable=False)
    definition: Mapped[str | None] = mapped_column(Text, nullable=True, default="")
    ipa: Mapped[str | None] = mapped_column(String(256), nullable=True)
    cefr: Mapped[str | None] = mapped_column(String(8), nullable=True)
    audio_url_us: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url_uk: Mapped[str | None] = mapped_column(Text, nullable=True)
    frequency: Mapped[str | None] = mapped_column(String(32), nullable=True)
    etymology: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Native JSON or a JSON-encoded string (legacy imports); decoded on read.
    forms: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    collocations: Mapped[list | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (UniqueConstraint("lemma", "pos", name="uq_lexeme_lemma_pos"),)


class Sense(Base):
    __tablename__ = "sense"

    sense_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lexeme_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("lexeme.lexeme_id", ondelete="CASCADE"))
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    definition: Mapped[str | None] = mapped_column(Text, nullable=True)
    examples: Mapped[list | None] = mapped_column(JSON, nullable=True)

    lexeme: Mapped[Lexeme] = relationship()

    __table_args__ = (Index("ix_sense_lexeme_order", "lexeme_id", "order_index"),)


class Translation(Base):
    __tablename__ = "translation"

    translation_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lexeme_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("lexeme.lexeme_id", ondelete="CASCADE"))
    lang: Mapped[str] = mapped_column(String(16), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    lexeme: Mapped[Lexeme] = relationship()

    __table_args__ = (UniqueConstraint("lexeme_id", "lang", name="uq_translation_lexeme_lang"),)


class AuditLog(Base):
    __tablename__ = "audit_log"

    audit_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False, values_callable=lambda e: [m.value for m in e]), nullable=False
    )
    entity: Mapped[str] = mapped_column(String(512), nullable=False)
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
