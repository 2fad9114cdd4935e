"""Tests for the ingestion synchronizer against the SQL poem store."""

import threading
import time
import uuid

import pytest
from sqlalchemy import delete, select, update

from ingest_service.sync import PoemLocks, Synchronizer, build_snapshot, retokenize
from poesie_core.db.enums import AuditAction
from poesie_core.db.models import AuditLog, Line, Poem, Token
from poesie_core.errors import MissingFieldsError, PoemNotFoundError, StaleSnapshotError
from poesie_core.identity import poem_id_for
from poesie_core.poems import PoemImport

STANZAS = "<p>Sous le pont Mirabeau</p><p></p><p>Et nos amours</p><p></p><p>Vienne la nuit</p>"


def payload(**overrides):
    values = {"html": STANZAS, "title": "Le Pont Mirabeau", "slug": "le-pont-mirabeau"}
    values.update(overrides)
    return PoemImport.model_validate(values)


def rows(session_factory, model):
    with session_factory() as session:
        return session.execute(select(model)).scalars().all()


class TestBuildSnapshot:

    def test_every_line_indexed_and_blank_lines_untokenized(self):
        snapshot = build_snapshot(uuid.uuid4(), ["un deux", "", "trois"])
        assert [line.index for line in snapshot.lines] == [0, 1, 2]
        assert [len(line.tokens) for line in snapshot.lines] == [2, 0, 1]
        assert snapshot.token_count == 3

    def test_retokenize_keeps_lines(self):
        snapshot = build_snapshot(uuid.uuid4(), ["un deux"])
        again = retokenize(snapshot)
        assert again == snapshot


class TestImport:

    def test_stanzas_survive(self, sync, store):
        poem_id = sync.import_poem(payload())
        assert poem_id == poem_id_for("le-pont-mirabeau")

        view = store.read_poem("le-pont-mirabeau")
        assert [line.order_index for line in view.lines] == [0, 1, 2, 3, 4]
        assert [line.text for line in view.lines] == [
            "Sous le pont Mirabeau",
            "",
            "Et nos amours",
            "",
            "Vienne la nuit",
        ]
        blank_ids = {line.line_id for line in view.lines if line.text == ""}
        assert not [t for t in view.tokens if t.line_id in blank_ids]

    def test_tokens_point_into_their_line(self, sync, store):
        sync.import_poem(payload(html="<p>l'amour vit à Paris</p>"))
        view = store.read_poem("le-pont-mirabeau")
        text = {line.line_id: line.text for line in view.lines}
        assert [t.surface for t in view.tokens] == ["l'amour", "vit", "à", "Paris"]
        for token in view.tokens:
            assert text[token.line_id][token.start_char:token.end_char] == token.surface
            assert token.lemma == token.surface.lower()
            assert token.pos == "X"
            assert token.feats == {}

    def test_reimport_replaces_everything(self, sync, store, session_factory):
        sync.import_poem(payload())
        sync.import_poem(payload(html="<p>Le vent se lève</p>"))

        view = store.read_poem("le-pont-mirabeau")
        assert [line.text for line in view.lines] == ["Le vent se lève"]
        assert len(rows(session_factory, Line)) == 1
        assert len(rows(session_factory, Token)) == 4
        assert len(rows(session_factory, Poem)) == 1

    def test_reimport_same_content_is_stable(self, sync, store):
        sync.import_poem(payload())
        first = store.read_poem("le-pont-mirabeau")
        sync.import_poem(payload())
        second = store.read_poem("le-pont-mirabeau")
        assert [(l.order_index, l.text) for l in first.lines] == [(l.order_index, l.text) for l in second.lines]
        assert [(t.surface, t.start_char) for t in first.tokens] == [(t.surface, t.start_char) for t in second.tokens]

    def test_reimport_keeps_metadata_left_out(self, sync, store):
        sync.import_poem(payload(year=1912, category="alcools", sourceUrl="https://example.org/pont"))
        sync.import_poem(payload(title="Le Pont Mirabeau (variante)"))
        poem = store.read_poem("le-pont-mirabeau").poem
        assert poem.title == "Le Pont Mirabeau (variante)"
        assert poem.year == 1912
        assert poem.category == "alcools"
        assert poem.source_url == "https://example.org/pont"

    @pytest.mark.parametrize("missing", ["content", "title", "slug"])
    def test_missing_fields_leave_storage_untouched(self, sync, session_factory, missing):
        values = payload().model_dump()
        values[missing] = ""
        with pytest.raises(MissingFieldsError):
            sync.import_poem(PoemImport.model_validate(values))
        assert rows(session_factory, Poem) == []
        assert rows(session_factory, AuditLog) == []

    def test_import_is_audited(self, sync, session_factory):
        sync.import_poem(payload())
        (entry,) = rows(session_factory, AuditLog)
        assert entry.actor == "test"
        assert entry.action == AuditAction.import_
        assert entry.entity == "Poem:le-pont-mirabeau"
        assert entry.meta["lines"] == 5
        assert entry.meta["tokens"] == 10


class TestReannotate:

    def test_unknown_poem(self, sync):
        with pytest.raises(PoemNotFoundError):
            sync.reannotate(uuid.uuid4())

    def test_rebuilds_tokens_and_keeps_lines(self, sync, store, session_factory):
        poem_id = sync.import_poem(payload())
        before = store.read_poem("le-pont-mirabeau")
        with session_factory() as session, session.begin():
            session.execute(delete(Token))

        assert sync.reannotate(poem_id) == poem_id

        after = store.read_poem("le-pont-mirabeau")
        assert [(l.line_id, l.text) for l in after.lines] == [(l.line_id, l.text) for l in before.lines]
        assert [t.surface for t in after.tokens] == [t.surface for t in before.tokens]
        assert after.poem.content == before.poem.content

    def test_tokens_follow_stored_line_text(self, sync, store, session_factory):
        poem_id = sync.import_poem(payload(html="<p>ancien texte</p>"))
        with session_factory() as session, session.begin():
            session.execute(update(Line).values(text="texte neuf ici"))

        sync.reannotate(poem_id)
        view = store.read_poem("le-pont-mirabeau")
        assert [t.surface for t in view.tokens] == ["texte", "neuf", "ici"]
        assert view.poem.content == "<p>ancien texte</p>"

    def test_reannotate_is_audited(self, sync, session_factory):
        poem_id = sync.import_poem(payload())
        sync.reannotate(poem_id)
        actions = sorted(entry.action.value for entry in rows(session_factory, AuditLog))
        assert actions == ["import", "reannotate"]


class StaleOnceStore:
    """Store stub whose first token write finds the lines changed."""

    def __init__(self, stale_writes=1):
        self.stale_writes = stale_writes
        self.loads = 0
        self.writes = 0

    def load_snapshot(self, poem_id):
        self.loads += 1
        return build_snapshot(poem_id, ["un deux"])

    def replace_tokens(self, snapshot, *, actor):
        self.writes += 1
        if self.writes <= self.stale_writes:
            raise StaleSnapshotError(snapshot.poem_id)


class TestConcurrentWriters:

    def test_token_write_refuses_lines_replaced_since_read(self, sync, store):
        poem_id = sync.import_poem(payload(html="<p>premier texte</p>"))
        old = store.load_snapshot(poem_id)
        sync.import_poem(payload(html="<p>second</p>"))

        with pytest.raises(StaleSnapshotError):
            store.replace_tokens(retokenize(old), actor="other")
        assert [t.surface for t in store.read_poem("le-pont-mirabeau").tokens] == ["second"]

    def test_token_write_for_deleted_poem(self, store):
        with pytest.raises(PoemNotFoundError):
            store.replace_tokens(build_snapshot(uuid.uuid4(), ["un"]), actor="test")

    def test_reannotate_reloads_after_stale_lines(self):
        store = StaleOnceStore()
        poem_id = uuid.uuid4()
        assert Synchronizer(store, actor="test").reannotate(poem_id) == poem_id
        assert (store.loads, store.writes) == (2, 2)

    def test_reannotate_gives_up_after_repeated_stale_lines(self):
        store = StaleOnceStore(stale_writes=10)
        sync = Synchronizer(store, actor="test")
        with pytest.raises(StaleSnapshotError):
            sync.reannotate(uuid.uuid4())
        assert store.writes == sync.max_attempts


class RecordingStore:
    """Store stub that records how many writes overlap per poem."""

    def __init__(self, barrier=None):
        self.barrier = barrier
        self.active = {}
        self.max_active = {}
        self.guard = threading.Lock()

    def import_poem(self, payload, snapshot, *, actor):
        with self.guard:
            n = self.active.get(payload.slug, 0) + 1
            self.active[payload.slug] = n
            self.max_active[payload.slug] = max(self.max_active.get(payload.slug, 0), n)
        if self.barrier is not None:
            self.barrier.wait()
        time.sleep(0.05)
        with self.guard:
            self.active[payload.slug] -= 1
        return snapshot.poem_id


def run_concurrently(*calls):
    errors = []

    def run(call):
        try:
            call()
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=run, args=(call,)) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    return errors


class TestLocking:

    def test_same_poem_is_serialized(self):
        store = RecordingStore()
        locks = PoemLocks()
        sync = Synchronizer(store, locks=locks, actor="test")
        errors = run_concurrently(*(lambda: sync.import_poem(payload()) for _ in range(4)))
        assert errors == []
        assert store.max_active["le-pont-mirabeau"] == 1
        assert len(locks) == 0

    def test_different_poems_run_in_parallel(self):
        # Both writes must be inside the store at the same time for the barrier to open.
        store = RecordingStore(barrier=threading.Barrier(2, timeout=2))
        sync = Synchronizer(store, actor="test")
        errors = run_concurrently(
            lambda: sync.import_poem(payload(slug="un")),
            lambda: sync.import_poem(payload(slug="deux")),
        )
        assert errors == []

    def test_lock_released_after_failure(self):
        locks = PoemLocks()
        poem_id = uuid.uuid4()
        with pytest.raises(ValueError):
            with locks.hold(poem_id):
                raise ValueError("boom")
        assert len(locks) == 0
        with locks.hold(poem_id):
            assert len(locks) == 1
