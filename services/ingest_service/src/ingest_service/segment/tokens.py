from __future__ import annotations

import unicodedata
from collections.abc import Iterator
from dataclasses import dataclass

from poesie_core.poems import TokenDraft

# Joiners that stay inside a word only when a letter follows.
APOSTROPHES = frozenset("'\u2019")
HYPHENS = frozenset("-\u2010\u2011")

# Placeholder tag until real tagging exists.
PLACEHOLDER_POS = "X"


@dataclass(frozen=True)
class TokenSpan:
    start: int
    end: int
    surface: str


def _is_letter(ch: str) -> bool:
    return unicodedata.category(ch)[0] == "L"


def _is_word_char(ch: str) -> bool:
    # Letters, combining marks, digits.
    return unicodedata.category(ch)[0] in "LMN"


def iter_token_spans(text: str) -> Iterator[TokenSpan]:
    """
    Yield word spans of `text` in order; `text[start:end] == surface`.

    A word starts on a letter and runs through letters, marks and digits; an
    apostrophe or hyphen is kept only when a letter follows it. Offsets are
    code-point indices into `text`.
    """
    i = 0
    n = len(text)
    while i < n:
        if not _is_letter(text[i]):
            i += 1
            continue
        start = i
        i += 1
        while i < n:
            ch = text[i]
            if _is_word_char(ch):
                i += 1
            elif (ch in APOSTROPHES or ch in HYPHENS) and i + 1 < n and _is_letter(text[i + 1]):
                i += 2
            else:
                break
        yield TokenSpan(start=start, end=i, surface=text[start:i])


def tokenize_line(text: str) -> list[TokenSpan]:
    if not text or not text.strip():
        return []
    return list(iter_token_spans(text))


def annotate(span: TokenSpan) -> TokenDraft:
    # Naive policy: lemma is the lowercased surface, POS is a constant, no features.
    return TokenDraft(
        start=span.start,
        end=span.end,
        surface=span.surface,
        lemma=span.surface.lower(),
        pos=PLACEHOLDER_POS,
        feats={},
    )


def annotate_line(text: str) -> tuple[TokenDraft, ...]:
    return tuple(annotate(span) for span in tokenize_line(text))
