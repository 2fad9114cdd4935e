"""Poem read endpoint."""

from uuid import UUID

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from api.deps import Store
from poesie_core.lexicon.fields import as_string_map, decode_json_field

router = APIRouter()


class PoemInfo(BaseModel):
    """Poem metadata."""

    poem_id: UUID
    slug: str
    title: str
    source_url: str | None
    year: int | None
    category: str | None


class LineInfo(BaseModel):
    """One display line; empty text is a stanza break."""

    line_id: UUID
    index: int
    text: str


class TokenInfo(BaseModel):
    """One word occurrence, as offsets into its line's text."""

    token_id: UUID
    line_id: UUID
    start: int
    end: int
    surface: str
    lemma: str
    pos: str
    feats: dict[str, str]


class PoemDetailResponse(BaseModel):
    """A poem with its ordered lines and their tokens."""

    poem: PoemInfo
    lines: list[LineInfo]
    tokens: list[TokenInfo]


@router.get("/{slug}", response_model=PoemDetailResponse)
def get_poem(store: Store, slug: str) -> PoemDetailResponse:
    """Get a poem's lines and tokens."""
    view = store.read_poem(slug)
    if view is None:
        raise HTTPException(status_code=404, detail="Poem not found")

    p = view.poem
    return PoemDetailResponse(
        poem=PoemInfo(
            poem_id=p.poem_id,
            slug=p.slug,
            title=p.title,
            source_url=p.source_url,
            year=p.year,
            category=p.category,
        ),
        lines=[LineInfo(line_id=ln.line_id, index=ln.order_index, text=ln.text) for ln in view.lines],
        tokens=[
            TokenInfo(
                token_id=t.token_id,
                line_id=t.line_id,
                start=t.start_char,
                end=t.end_char,
                surface=t.surface,
                lemma=t.lemma,
                pos=t.pos,
                feats=as_string_map(decode_json_field(t.feats), stringify=True) or {},
            )
            for t in view.tokens
        ],
    )
