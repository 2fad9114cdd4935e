"""
Ingestion synchronizer: makes a poem's stored lines and tokens match freshly
extracted content.

Every write is a whole-snapshot replacement (old snapshot -> new snapshot)
performed by the persistence port in one transaction, under a per-poem lock so
two calls for the same poem never overlap. Calls for different poems do not
wait on each other.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from poesie_core.db.store import PoemStore
from poesie_core.errors import PoemNotFoundError, StaleSnapshotError
from poesie_core.identity import poem_id_for
from poesie_core.poems import LineDraft, PoemImport, PoemSnapshot
from ingest_service.parse.html_to_lines import extract_lines
from ingest_service.segment.tokens import annotate_line
from ingest_service.settings import settings

logger = logging.getLogger(__name__)


class PoemLocks:
    """One mutex per poem identity, released and forgotten when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[uuid.UUID, threading.Lock] = {}
        self._waiters: dict[uuid.UUID, int] = {}

    @contextmanager
    def hold(self, poem_id: uuid.UUID) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(poem_id, threading.Lock())
            self._waiters[poem_id] = self._waiters.get(poem_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[poem_id] -= 1
                if not self._waiters[poem_id]:
                    del self._waiters[poem_id]
                    del self._locks[poem_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def build_snapshot(poem_id: uuid.UUID, lines: Sequence[str]) -> PoemSnapshot:
    """Index every line (stanza breaks included) and tokenize the non-blank ones."""
    return PoemSnapshot(
        poem_id=poem_id,
        lines=tuple(LineDraft(index=i, text=text, tokens=annotate_line(text)) for i, text in enumerate(lines)),
    )


def retokenize(snapshot: PoemSnapshot) -> PoemSnapshot:
    return PoemSnapshot(
        poem_id=snapshot.poem_id,
        lines=tuple(
            LineDraft(index=line.index, text=line.text, tokens=annotate_line(line.text), line_id=line.line_id)
            for line in snapshot.lines
        ),
    )


class Synchronizer:
    max_attempts = 3

    def __init__(self, store: PoemStore, *, locks: PoemLocks | None = None, actor: str | None = None) -> None:
        self.store = store
        self.locks = locks if locks is not None else PoemLocks()
        self.actor = actor or settings.audit_actor

    def import_poem(self, payload: PoemImport) -> uuid.UUID:
        payload.require_fields()
        poem_id = poem_id_for(payload.slug)
        snapshot = build_snapshot(poem_id, extract_lines(payload.content))
        with self.locks.hold(poem_id):
            stored_id = self.store.import_poem(payload, snapshot, actor=self.actor)
        logger.info(
            "import poem=%s slug=%s lines=%d tokens=%d",
            stored_id,
            payload.slug,
            len(snapshot.lines),
            snapshot.token_count,
        )
        return stored_id

    def reannotate(self, poem_id: uuid.UUID) -> uuid.UUID:
        with self.locks.hold(poem_id):
            attempt = 1
            while True:
                current = self.store.load_snapshot(poem_id)
                if current is None:
                    raise PoemNotFoundError(poem_id)
                snapshot = retokenize(current)
                try:
                    self.store.replace_tokens(snapshot, actor=self.actor)
                    break
                except StaleSnapshotError:
                    # Another process re-imported the poem since the lines were read.
                    if attempt >= self.max_attempts:
                        raise
                    logger.warning("reannotate poem=%s lines changed, reloading (attempt %d)", poem_id, attempt)
                    attempt += 1
        logger.info("reannotate poem=%s lines=%d tokens=%d", poem_id, len(snapshot.lines), snapshot.token_count)
        return poem_id
