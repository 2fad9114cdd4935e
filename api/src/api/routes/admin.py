"""Ingestion endpoints: import a poem, re-tokenize a poem."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from api.deps import Sync
from poesie_core.errors import MissingFieldsError, PoemNotFoundError, StaleSnapshotError
from poesie_core.poems import PoemImport

router = APIRouter()


class IngestResponse(BaseModel):
    """Identity of the poem that was written."""

    ok: bool = True
    poem_id: UUID


@router.post("/import", response_model=IngestResponse)
def import_poem(sync: Sync, payload: PoemImport) -> IngestResponse:
    """Upsert a poem by slug and replace its lines and tokens."""
    try:
        poem_id = sync.import_poem(payload)
    except MissingFieldsError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return IngestResponse(poem_id=poem_id)


@router.post("/reannotate", response_model=IngestResponse)
def reannotate_poem(sync: Sync, poem_id: UUID | None = Query(None)) -> IngestResponse:
    """Recompute tokens for an existing poem without touching its lines or metadata."""
    if poem_id is None:
        raise HTTPException(status_code=400, detail="Missing poem_id")
    try:
        sync.reannotate(poem_id)
    except PoemNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Poem not found") from exc
    except StaleSnapshotError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return IngestResponse(poem_id=poem_id)
