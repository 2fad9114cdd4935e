"""
CSV exchange format for the lexicon.

lexemes.csv:      lemma,pos,definition,ipa,audio_url_us,audio_url_uk,cefr,
                  frequency,etymology,notes,forms_json,collocations_json
translations.csv: lemma,pos,lang,text

JSON columns are normalized on write: valid JSON is stored as a native
structure, anything else is skipped for that field only.
"""

from __future__ import annotations

import csv
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from poesie_core.db.enums import LexemeImportMode
from poesie_core.db.models import Lexeme, Translation
from poesie_core.identity import lexeme_id_for
from poesie_core.lexicon.fields import Decoded, decode_json_field, normalize_json_field

logger = logging.getLogger(__name__)

SCALAR_FIELDS = (
    "definition",
    "ipa",
    "audio_url_us",
    "audio_url_uk",
    "cefr",
    "frequency",
    "etymology",
    "notes",
)
LEXEME_COLUMNS = ["lemma", "pos", *SCALAR_FIELDS, "forms_json", "collocations_json"]
TRANSLATION_COLUMNS = ["lemma", "pos", "lang", "text"]


@dataclass
class ImportStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0


def read_csv(path: Path) -> list[dict[str, str]]:
    with path.open(newline="", encoding="utf-8") as fh:
        return [dict(row) for row in csv.DictReader(fh)]


def write_csv(path: Path, columns: list[str], rows: Iterable[dict[str, Any]]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow({c: "" if row.get(c) is None else row.get(c) for c in columns})
            count += 1
    return count


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list)):
        return not value
    return False


def import_lexeme_rows(
    session: Session,
    rows: Iterable[dict[str, str]],
    *,
    mode: LexemeImportMode = LexemeImportMode.update_missing,
) -> ImportStats:
    stats = ImportStats()
    for row in rows:
        lemma = (row.get("lemma") or "").strip()
        pos = (row.get("pos") or "").strip()
        if not lemma or not pos:
            stats.skipped += 1
            continue

        forms = normalize_json_field(row.get("forms_json"))
        if forms is not None and not isinstance(forms, dict):
            forms = None
        collocations = normalize_json_field(row.get("collocations_json"))
        if collocations is not None and not isinstance(collocations, list):
            collocations = None

        existing = session.execute(
            select(Lexeme).where(Lexeme.lemma == lemma, Lexeme.pos == pos)
        ).scalar_one_or_none()
        if existing is None:
            session.add(
                Lexeme(
                    lexeme_id=lexeme_id_for(lemma=lemma, pos=pos),
                    lemma=lemma,
                    pos=pos,
                    definition=row.get("definition") or "",
                    **{f: row.get(f) or None for f in SCALAR_FIELDS if f != "definition"},
                    forms=forms,
                    collocations=collocations,
                )
            )
            session.flush()
            stats.created += 1
            continue

        changed = False
        for name in SCALAR_FIELDS:
            value = row.get(name)
            if is_blank(value):
                continue
            if mode is LexemeImportMode.overwrite or is_blank(getattr(existing, name)):
                setattr(existing, name, value)
                changed = True
        for name, value in (("forms", forms), ("collocations", collocations)):
            if value is None:
                continue
            if mode is LexemeImportMode.overwrite or is_blank(_decoded(getattr(existing, name))):
                setattr(existing, name, value)
                changed = True
        if changed:
            stats.updated += 1
        else:
            stats.skipped += 1
    return stats


def import_translation_rows(session: Session, rows: Iterable[dict[str, str]]) -> ImportStats:
    stats = ImportStats()
    for row in rows:
        lemma = (row.get("lemma") or "").strip()
        pos = (row.get("pos") or "").strip()
        lang = (row.get("lang") or "").strip()
        text = row.get("text") or ""
        if not lemma or not pos or not lang:
            stats.skipped += 1
            continue
        lexeme_id = session.execute(
            select(Lexeme.lexeme_id).where(Lexeme.lemma == lemma, Lexeme.pos == pos)
        ).scalar_one_or_none()
        if lexeme_id is None:
            logger.debug("No lexeme for translation %s/%s (%s)", lemma, pos, lang)
            stats.skipped += 1
            continue
        translation = session.execute(
            select(Translation).where(Translation.lexeme_id == lexeme_id, Translation.lang == lang)
        ).scalar_one_or_none()
        if translation is None:
            session.add(Translation(lexeme_id=lexeme_id, lang=lang, text=text))
            session.flush()
            stats.created += 1
        else:
            translation.text = text
            stats.updated += 1
    return stats


def export_lexemes(session: Session, lexemes_path: Path, translations_path: Path) -> tuple[int, int]:
    lexemes = session.execute(select(Lexeme).order_by(Lexeme.lemma, Lexeme.pos)).scalars().all()
    translations = session.execute(
        select(Lexeme.lemma, Lexeme.pos, Translation.lang, Translation.text)
        .join(Lexeme, Lexeme.lexeme_id == Translation.lexeme_id)
        .order_by(Lexeme.lemma, Lexeme.pos, Translation.lang)
    ).all()

    lexeme_rows = (
        {
            "lemma": lx.lemma,
            "pos": lx.pos,
            **{name: getattr(lx, name) for name in SCALAR_FIELDS},
            "forms_json": _json_cell(lx.forms),
            "collocations_json": _json_cell(lx.collocations),
        }
        for lx in lexemes
    )
    n_lex = write_csv(lexemes_path, LEXEME_COLUMNS, lexeme_rows)
    n_tr = write_csv(
        translations_path,
        TRANSLATION_COLUMNS,
        ({"lemma": r.lemma, "pos": r.pos, "lang": r.lang, "text": r.text} for r in translations),
    )
    return n_lex, n_tr


def _decoded(raw: Any) -> Any:
    field = decode_json_field(raw)
    return field.value if isinstance(field, Decoded) else None


def _json_cell(raw: Any) -> str:
    value = _decoded(raw)
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False)
