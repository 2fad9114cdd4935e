from __future__ import annotations

import uuid

NAMESPACE_POEM = uuid.UUID("5b0e2f8c-3d4a-4f0e-9a57-2c61d8e3b7a4")
NAMESPACE_LEXEME = uuid.UUID("c7a1e9d2-80f4-4b3e-b6c5-91f0a2d4e8b6")


def stable_uuid(namespace: uuid.UUID, name: str) -> uuid.UUID:
    return uuid.uuid5(namespace, name.strip())


def poem_id_for(slug: str) -> uuid.UUID:
    return stable_uuid(NAMESPACE_POEM, slug)


def lexeme_id_for(*, lemma: str, pos: str) -> uuid.UUID:
    return stable_uuid(NAMESPACE_LEXEME, f"{lemma.strip()}:{pos.strip()}")
