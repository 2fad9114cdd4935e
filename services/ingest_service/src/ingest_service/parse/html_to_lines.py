from __future__ import annotations

import copy
import re

from bs4 import BeautifulSoup, Tag

_TRAILING_WS_RE = re.compile(r"[ \t]+\Z")

# Inside a paragraph a <br> becomes an embedded newline (soft break).
SOFT_BREAK = "\n"

# html.parser adds no implied <html>/<body>/<p> wrappers around fragments.
_PARSER = "html.parser"


def extract_lines(markup: str) -> list[str]:
    """
    Contract:
    - One line per <p>, in document order; an empty <p> is an empty line (stanza break).
    - <br> inside a <p> stays inside that line as an embedded newline.
    - Without any <p>, every <br> (and source newline) starts a new line.
    - Internal spacing is preserved; only trailing spaces/tabs are trimmed.
    - Never raises on malformed markup; empty lines are never dropped.
    """
    soup = BeautifulSoup(markup or "", _PARSER)
    paragraphs = [p for p in soup.find_all("p") if isinstance(p, Tag)]
    if paragraphs:
        return [_paragraph_text(p) for p in paragraphs]
    return _fallback_lines(soup)


def replace_breaks(tag: Tag, marker: str = SOFT_BREAK) -> None:
    """Swap every <br> below `tag` (whatever its attributes) for `marker` text."""
    for br in tag.find_all("br"):
        br.replace_with(marker)


def _paragraph_text(p: Tag) -> str:
    own = copy.copy(p)
    # Unclosed <p> markup can nest paragraphs; nested ones are emitted as their own lines.
    for nested in own.find_all("p"):
        nested.decompose()
    replace_breaks(own)
    # Fresh document per paragraph so nothing from one line leaks into another.
    return _clean_line(_fragment_text(own.decode_contents()))


def _fallback_lines(soup: BeautifulSoup) -> list[str]:
    root = soup.body if isinstance(soup.body, Tag) else soup
    replace_breaks(root, "\n")
    return [_clean_line(segment) for segment in root.get_text().split("\n")]


def _fragment_text(inner_html: str) -> str:
    return BeautifulSoup(inner_html, _PARSER).get_text()


def _clean_line(text: str) -> str:
    text = text.replace("\r", "").replace("\u00a0", " ")
    return _TRAILING_WS_RE.sub("", text)
