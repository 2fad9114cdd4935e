"""Tests for the HTTP entry points."""

import uuid
from types import SimpleNamespace

from poesie_core.db.models import Lexeme, Sense, Translation
from poesie_core.errors import StaleSnapshotError

POEM = {
    "html": "<p>Le cheval galope</p><p></p><p>au bord de l'eau</p>",
    "title": "Galop",
    "slug": "galop",
    "sourceUrl": "https://example.org/galop",
    "year": 1901,
}


def add_cheval(session_factory):
    lexeme_id = uuid.uuid4()
    with session_factory() as session, session.begin():
        session.add(
            Lexeme(
                lexeme_id=lexeme_id,
                lemma="cheval",
                pos="X",
                ipa="/ʃəval/",
                collocations='["à cheval", "cheval de bataille"]',
                forms={"plural": "chevaux"},
            )
        )
        session.flush()
        session.add(
            Sense(
                sense_id=uuid.uuid4(),
                lexeme_id=lexeme_id,
                order_index=0,
                definition="Grand mammifère domestique.",
                examples='[{"text": "Le cheval galope."}]',
            )
        )
        session.add(Translation(translation_id=uuid.uuid4(), lexeme_id=lexeme_id, lang="en", text="horse"))


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


class TestAdminImport:

    def test_import_and_read_back(self, client):
        response = client.post("/api/admin/import", json=POEM)
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        poem_id = body["poem_id"]

        detail = client.get("/api/poems/galop").json()
        assert detail["poem"]["poem_id"] == poem_id
        assert detail["poem"]["source_url"] == "https://example.org/galop"
        assert [line["text"] for line in detail["lines"]] == ["Le cheval galope", "", "au bord de l'eau"]
        assert [line["index"] for line in detail["lines"]] == [0, 1, 2]
        assert [t["surface"] for t in detail["tokens"]] == ["Le", "cheval", "galope", "au", "bord", "de", "l'eau"]

    def test_missing_fields_is_400(self, client):
        response = client.post("/api/admin/import", json={"html": "<p>x</p>", "slug": "x"})
        assert response.status_code == 400
        assert "title" in response.json()["detail"]
        assert client.get("/api/poems/x").status_code == 404

    def test_reannotate(self, client):
        poem_id = client.post("/api/admin/import", json=POEM).json()["poem_id"]
        response = client.post("/api/admin/reannotate", params={"poem_id": poem_id})
        assert response.status_code == 200
        assert response.json() == {"ok": True, "poem_id": poem_id}

    def test_reannotate_requires_id(self, client):
        assert client.post("/api/admin/reannotate").status_code == 400

    def test_reannotate_unknown_poem_is_404(self, client):
        response = client.post("/api/admin/reannotate", params={"poem_id": str(uuid.uuid4())})
        assert response.status_code == 404


class TestLexemeCard:

    def test_missing_params_is_400(self, client):
        response = client.get("/api/lexeme", params={"lemma": "cheval"})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_unknown_word_gets_stub(self, client):
        response = client.get("/api/lexeme", params={"lemma": "zzz", "pos": "X"})
        assert response.status_code == 200
        assert response.json() == {"lemma": "zzz", "pos": "X", "definition": ""}
        assert response.headers["cache-control"] == "public, max-age=300"

    def test_card_from_stored_entry(self, client, session_factory):
        add_cheval(session_factory)
        response = client.get("/api/lexeme", params={"lemma": "cheval", "pos": "X"})
        assert response.status_code == 200
        assert "max-age=86400" in response.headers["cache-control"]
        card = response.json()
        assert card["definition"] == "Grand mammifère domestique."
        assert card["example"] == {"text": "Le cheval galope."}
        assert card["collocations"] == ["à cheval", "cheval de bataille"]
        assert card["forms"] == {"plural": "chevaux"}
        assert card["translations"] == {"en": "horse"}
        assert "morphology" not in card

    def test_card_uses_clicked_token(self, client, session_factory):
        add_cheval(session_factory)
        client.post("/api/admin/import", json=POEM)
        token = next(t for t in client.get("/api/poems/galop").json()["tokens"] if t["lemma"] == "cheval")

        card = client.get("/api/lexeme", params={"lemma": "cheval", "pos": "X", "token_id": token["token_id"]}).json()
        assert card["morphology"] == {"surface": "cheval", "lemma": "cheval", "pos": "X", "features": {}}

    def test_card_falls_back_to_representative_token(self, client, session_factory):
        add_cheval(session_factory)
        client.post("/api/admin/import", json=POEM)
        card = client.get("/api/lexeme", params={"lemma": "cheval", "pos": "X"}).json()
        assert card["morphology"]["surface"] == "cheval"


def test_unknown_poem_is_404(client):
    assert client.get("/api/poems/nope").status_code == 404


class StaleSync:
    def reannotate(self, poem_id):
        raise StaleSnapshotError(poem_id)


def test_reannotate_conflict_is_409(client):
    from api.deps import get_synchronizer
    from api.main import app

    app.dependency_overrides[get_synchronizer] = lambda: StaleSync()
    response = client.post("/api/admin/reannotate", params={"poem_id": str(uuid.uuid4())})
    assert response.status_code == 409


def test_shutdown_disposes_engine(monkeypatch):
    from fastapi.testclient import TestClient

    from api import main

    disposed = []
    monkeypatch.setattr(main, "engine", SimpleNamespace(dispose=lambda: disposed.append(True)))
    with TestClient(main.app):
        assert disposed == []
    assert disposed == [True]
