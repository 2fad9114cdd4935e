from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from poesie_core.db.models import Lexeme, Token
from poesie_core.identity import lexeme_id_for


def backfill_lexemes(session: Session) -> tuple[int, int]:
    """Create an empty Lexeme for every token (lemma, pos) that has none; returns (created, present)."""
    pairs = session.execute(select(Token.lemma, Token.pos).distinct().order_by(Token.lemma, Token.pos)).all()
    known = {(lemma, pos) for lemma, pos in session.execute(select(Lexeme.lemma, Lexeme.pos))}

    created = 0
    for lemma, pos in pairs:
        if (lemma, pos) in known:
            continue
        session.add(
            Lexeme(
                lexeme_id=lexeme_id_for(lemma=lemma, pos=pos),
                lemma=lemma,
                pos=pos,
                definition="",
                forms={},
                collocations=[],
            )
        )
        known.add((lemma, pos))
        created += 1
    session.flush()
    return created, len(pairs) - created
