"""Word card lookup."""

from uuid import UUID

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from api.config import settings
from api.deps import Store
from poesie_core.lexicon.card import project_card, stub_card

router = APIRouter()


@router.get("")
def get_lexeme_card(
    store: Store,
    lemma: str | None = Query(None),
    pos: str | None = Query(None),
    token_id: UUID | None = Query(None, description="Clicked token; its morphology goes on the card."),
) -> JSONResponse:
    """
    Return the card for (lemma, pos).

    Unknown words still get a well-formed card with an empty definition.
    """
    if not lemma or not pos:
        return JSONResponse({"error": "Missing lemma or pos query parameter"}, status_code=400)

    bundle = store.find_lexeme(lemma, pos)
    if bundle is None:
        return JSONResponse(
            stub_card(lemma, pos).to_payload(),
            headers={"Cache-Control": settings.lexeme_stub_cache_control},
        )

    token = store.find_token(token_id) if token_id is not None else None
    if token is None:
        token = store.representative_token(lemma, pos)
    card = project_card(bundle, token)
    return JSONResponse(card.to_payload(), headers={"Cache-Control": settings.lexeme_cache_control})
