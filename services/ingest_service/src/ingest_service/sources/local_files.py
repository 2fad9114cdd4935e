"""
Turn a folder of poem files into import payloads.

`.txt` files hold one verse per line with blank lines between stanzas;
`.html` files are saved site pages where the poem is the longest paragraph
broken by <br>. Both become one <p> per verse so the extractor sees the same
shape regardless of origin.
"""

from __future__ import annotations

import html
import re
import unicodedata
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from bs4 import BeautifulSoup, Tag

from ingest_service.parse.html_to_lines import replace_breaks
from poesie_core.errors import SourceError
from poesie_core.poems import PoemImport

POEM_EXTENSIONS = (".html", ".htm", ".txt")

KNOWN_NAV_STRINGS = (
    "Précédent",
    "Suivant",
    "Previous",
    "Next",
    "Poésie",
    "Homepage is maintained",
)

_WS_RE = re.compile(r"\s+")
# Stands in for <br> while source whitespace is collapsed.
_VERSE_BREAK = "\x00"


@dataclass(frozen=True)
class LocalPoem:
    title: str
    content: str


def kebab(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", "-", ascii_only.lower()).strip("-")


def lines_to_paragraphs(lines: list[str]) -> str:
    return "".join(f"<p>{html.escape(line, quote=False)}</p>" if line.strip() else "<p></p>" for line in lines)


def poem_from_txt(text: str) -> LocalPoem:
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").split("\n")]
    core = _trim_blank_edges(lines)
    title = next((_WS_RE.sub(" ", line).strip() for line in core if line.strip()), "Untitled")
    return LocalPoem(title=title, content=lines_to_paragraphs(core))


def poem_from_html(page: str) -> LocalPoem:
    soup = BeautifulSoup(page, "lxml")
    title = _page_title(soup)

    candidates = [p for p in soup.find_all("p") if isinstance(p, Tag) and p.find("br") is not None]
    if candidates:
        poem_p = max(candidates, key=lambda p: len(p.decode_contents()))
        # Source newlines are insignificant in markup; only <br> ends a verse.
        replace_breaks(poem_p, _VERSE_BREAK)
        raw_lines = _WS_RE.sub(" ", poem_p.get_text()).split(_VERSE_BREAK)
    else:
        body = soup.body if isinstance(soup.body, Tag) else soup
        replace_breaks(body, "\n")
        raw_lines = body.get_text().split("\n")

    title_plain = _WS_RE.sub(" ", title).strip()
    lines: list[str] = []
    for raw in raw_lines:
        line = _WS_RE.sub(" ", raw).strip()
        if line == title_plain or any(nav in line for nav in KNOWN_NAV_STRINGS):
            continue
        if not line and lines and not lines[-1]:
            continue
        lines.append(line)
    return LocalPoem(title=title, content=lines_to_paragraphs(_trim_blank_edges(lines)))


def derive_category(path: Path, root: Path) -> str | None:
    parts = path.relative_to(root).parts
    return parts[0] if len(parts) > 1 else None


def iter_poem_files(root: Path) -> Iterator[Path]:
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in POEM_EXTENSIONS:
            continue
        if path.stem.lower() == "index":
            continue
        yield path


def load_poem_file(path: Path, root: Path) -> PoemImport:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceError(f"Cannot read {path}: {exc}") from exc

    poem = poem_from_txt(raw) if path.suffix.lower() == ".txt" else poem_from_html(raw)
    slug = kebab(path.stem)
    if not slug:
        raise SourceError(f"Cannot derive a slug from file name {path.name!r}")
    return PoemImport(content=poem.content, title=poem.title, slug=slug, category=derive_category(path, root))


def _page_title(soup: BeautifulSoup) -> str:
    for selector in ("h1", "title", "p > b"):
        tag = soup.select_one(selector)
        if tag is not None:
            text = tag.get_text().strip()
            if text:
                return text
    return "Untitled"


def _trim_blank_edges(lines: list[str]) -> list[str]:
    start = 0
    end = len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]
