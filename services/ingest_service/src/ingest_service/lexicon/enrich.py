"""
Offline dictionary enrichment from a Wiktextract dump and a Lexique table.

Works on the CSV exchange format only: read lexemes.csv, fill what the dump
knows, write a new lexemes.csv (and translations.csv) for `lexemes-import`.
The dump is semi-trusted input, so every JSON line is parsed defensively and
unusable lines are skipped.
"""

from __future__ import annotations

import csv
import gzip
import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from poesie_core.db.enums import LexemeImportMode
from ingest_service.lexicon.csv_io import is_blank

logger = logging.getLogger(__name__)

# Universal POS tags -> Wiktextract part-of-speech names.
_WIKTEXTRACT_POS = {
    "NOUN": "noun",
    "PROPN": "noun",
    "VERB": "verb",
    "AUX": "verb",
    "ADJ": "adjective",
    "ADV": "adverb",
    "PRON": "pronoun",
    "DET": "determiner",
    "ADP": "preposition",
    "NUM": "numeral",
    "INTJ": "interjection",
    "PART": "particle",
    "CONJ": "conjunction",
    "CCONJ": "conjunction",
    "SCONJ": "conjunction",
}


@dataclass
class EnrichResult:
    rows: list[dict[str, str]]
    translations: list[dict[str, str]] = field(default_factory=list)
    matched: int = 0


def wiktextract_pos(pos: str) -> str:
    return _WIKTEXTRACT_POS.get(pos.strip().upper(), "")


def frequency_bucket(value: float | None) -> str | None:
    if not value:
        return None
    if value >= 50:
        return "high"
    if value >= 10:
        return "medium"
    return "low"


def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8")
    return path.open(encoding="utf-8")


def iter_wiktextract(path: Path) -> Iterator[dict[str, Any]]:
    with _open_text(path) as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except ValueError:
                continue
            if isinstance(entry, dict):
                yield entry


def load_wiktextract_subset(path: Path, targets: set[str], *, lang_code: str = "fr") -> dict[str, list[dict]]:
    by_lemma: dict[str, list[dict]] = {}
    for entry in iter_wiktextract(path):
        if entry.get("lang_code") != lang_code:
            continue
        word = str(entry.get("word") or "").lower()
        if word and word in targets:
            by_lemma.setdefault(word, []).append(entry)
    return by_lemma


def pick_best(entries: list[dict], want_pos: str) -> dict | None:
    if not entries:
        return None

    def richness(entry: dict) -> int:
        senses = entry.get("senses")
        return len(senses) if isinstance(senses, list) else 0

    exact = [e for e in entries if not want_pos or e.get("pos") == want_pos]
    return max(exact or entries, key=richness)


def load_lexique_frequencies(path: Path | None) -> dict[str, float]:
    """Sum book frequencies (films as fallback) per lemma from a Lexique export."""
    freqs: dict[str, float] = {}
    if path is None or not path.exists():
        return freqs
    with path.open(newline="", encoding="utf-8") as fh:
        header_line = fh.readline()
        delimiter = ";" if ";" in header_line else "\t" if "\t" in header_line else ","
        header = [h.strip().lower() for h in header_line.rstrip("\r\n").split(delimiter)]
        lemma_col = next((i for i, h in enumerate(header) if "lemme" in h), -1)
        freq_col = next((i for i, h in enumerate(header) if "freqlivres" in h), -1)
        if freq_col < 0:
            freq_col = next((i for i, h in enumerate(header) if "freqfilms2" in h), -1)
        if lemma_col < 0 or freq_col < 0:
            logger.warning("Lexique table %s lacks lemma/frequency columns", path)
            return freqs
        for cols in csv.reader(fh, delimiter=delimiter):
            if len(cols) <= max(lemma_col, freq_col):
                continue
            lemma = cols[lemma_col].lower()
            try:
                value = float(cols[freq_col].replace(",", "."))
            except ValueError:
                value = 0.0
            if lemma:
                freqs[lemma] = freqs.get(lemma, 0.0) + value
    return freqs


def _first(items: Any, key: str) -> Any:
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get(key):
            return item[key]
    return None


def first_gloss(entry: dict) -> str:
    glosses = _first(entry.get("senses"), "glosses")
    return glosses[0] if isinstance(glosses, list) and glosses and isinstance(glosses[0], str) else ""


def first_ipa(entry: dict) -> str | None:
    return _first(entry.get("sounds"), "ipa")


def first_mp3(entry: dict) -> str | None:
    return _first(entry.get("sounds"), "mp3_url")


def first_etymology(entry: dict) -> str | None:
    texts = entry.get("etymology_texts")
    if isinstance(texts, list) and texts and isinstance(texts[0], str):
        return texts[0]
    return None


def enrich_rows(
    rows: list[dict[str, str]],
    dump: dict[str, list[dict]],
    frequencies: dict[str, float],
    *,
    mode: LexemeImportMode = LexemeImportMode.update_missing,
) -> EnrichResult:
    result = EnrichResult(rows=[])

    def allow(current: Any) -> bool:
        return mode is LexemeImportMode.overwrite or is_blank(current)

    for source in rows:
        row = dict(source)
        lemma = (row.get("lemma") or "").strip()
        pos = (row.get("pos") or "").strip()
        key = lemma.lower()

        best = pick_best(dump.get(key, []), wiktextract_pos(pos))
        if best is not None:
            result.matched += 1
            gloss = first_gloss(best)
            if gloss and allow(row.get("definition")):
                row["definition"] = gloss
            for column, value in (
                ("ipa", first_ipa(best)),
                ("audio_url_us", first_mp3(best)),
                ("etymology", first_etymology(best)),
            ):
                if value and allow(row.get(column)):
                    row[column] = value
            for tr in best.get("translations") or []:
                if not isinstance(tr, dict):
                    continue
                lang = str(tr.get("lang_code") or "").lower()
                text = str(tr.get("word") or "").strip()
                if lang and text:
                    result.translations.append({"lemma": lemma, "pos": pos, "lang": lang, "text": text})

        if allow(row.get("frequency")):
            bucket = frequency_bucket(frequencies.get(key))
            if bucket:
                row["frequency"] = bucket
        result.rows.append(row)

    logger.info("Enriched %d/%d lexemes from dump", result.matched, len(rows))
    return result
