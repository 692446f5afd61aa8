"""
HTTP layer: routing, response envelopes and error status mapping.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from main import create_app
from paperhub.database.postgres import PostgresPaperRepository
from paperhub.database.postgres.utils import sql_errors

PAPER = {
    "title": "Attention Is All You Need",
    "abstract": "Transformers everywhere.",
    "keywords": ["transformers"],
    "publication_date": "2017-06-12",
    "doi": "10.48550/arXiv.1706.03762",
    "authors": [{"name": "Ashish Vaswani"}],
}

ANNOTATION = {
    "type": "comment",
    "page_number": 1,
    "position": {"x": 1, "y": 2},
    "content": "check this",
}


@pytest.fixture
def client(factory):
    factory.initialize("relational")
    with TestClient(create_app(factory)) as client:
        yield client


@pytest.fixture
def paper_id(client):
    return client.post("/api/papers", json=PAPER).json()["data"]["id"]


def _create_paper(client, **overrides):
    response = client.post("/api/papers", json={**PAPER, "doi": None, **overrides})
    assert response.status_code == 201
    return response.json()["data"]["id"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["engine"] == "relational"

    def test_uninitialized_factory(self, factory):
        """Should answer 503 while no engine is active."""
        client = TestClient(create_app(factory))  # no lifespan, nothing initialized
        response = client.get("/api/papers")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "FACTORY_NOT_INITIALIZED"


class TestPaperRoutes:
    def test_create_and_get(self, client, paper_id):
        response = client.get(f"/api/papers/{paper_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["title"] == PAPER["title"]
        assert body["data"]["authors"][0]["name"] == "Ashish Vaswani"

    def test_missing_paper(self, client):
        assert client.get("/api/papers/missing").status_code == 404
        assert client.put("/api/papers/missing", json={"title": "x"}).status_code == 404
        assert client.delete("/api/papers/missing").status_code == 404

    def test_duplicate_doi(self, client, paper_id):
        response = client.post("/api/papers", json=PAPER)
        assert response.status_code == 409
        assert response.json() == {
            "status": "error",
            "error": {
                "code": "DUPLICATE_ENTITY",
                "message": f"Paper with doi {PAPER['doi']} already exists",
            },
        }

    def test_partial_update(self, client, paper_id):
        response = client.put(f"/api/papers/{paper_id}", json={"title": "Renamed"})
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Renamed"
        assert response.json()["data"]["abstract"] == PAPER["abstract"]

    def test_delete(self, client, paper_id):
        assert client.delete(f"/api/papers/{paper_id}").status_code == 200
        assert client.get(f"/api/papers/{paper_id}").status_code == 404

    def test_list(self, client, paper_id):
        body = client.get("/api/papers").json()
        assert body["count"] == 1
        assert body["data"][0]["id"] == paper_id

    def test_search(self, client):
        _create_paper(client, title="Test Paper Title")
        _create_paper(client, title="Another Paper")

        response = client.get("/api/papers/search", params={"q": "Another"})

        assert response.status_code == 200
        body = response.json()
        assert [p["title"] for p in body["data"]] == ["Another Paper"]
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "total_pages": 1}

    def test_search_sorting_and_paging(self, client):
        for title in ("b", "a", "c"):
            _create_paper(client, title=title)

        response = client.get("/api/papers/search", params={"sortBy": "title", "limit": 2, "page": 2})

        assert [p["title"] for p in response.json()["data"]] == ["c"]

    def test_storage_failure_hides_driver_detail(self, client, monkeypatch):
        @sql_errors("list papers")
        def broken_find_all(self, limit=None, offset=0):
            raise OperationalError("SELECT * FROM papers", {}, Exception("disk I/O error"))

        monkeypatch.setattr(PostgresPaperRepository, "find_all", broken_find_all)

        response = client.get("/api/papers")

        assert response.status_code == 500
        assert response.json() == {
            "status": "error",
            "error": {"code": "REPOSITORY_FAILURE", "message": "Failed to list papers"},
        }

    def test_unstorable_value_on_document_engine(self, client):
        client.post("/api/database/switch", json={"databaseType": "document"})

        response = client.post("/api/papers", json={**PAPER, "metadata": {"n": 2**70}})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_search_inverted_date_range(self, client):
        response = client.get("/api/papers/search", params={"dateFrom": "2020-01-01", "dateTo": "2019-01-01"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestCitationRoutes:
    def test_citation_lifecycle(self, client):
        source = _create_paper(client, title="source")
        target = _create_paper(client, title="target")

        created = client.post(f"/api/papers/{source}/citations", json={"targetPaperId": target, "pageNumber": 3})
        assert created.status_code == 201
        assert created.json()["data"]["page_number"] == 3

        assert client.get(f"/api/papers/{source}/citations").json()["count"] == 1
        assert [p["id"] for p in client.get(f"/api/papers/{target}/cited-by").json()["data"]] == [source]
        assert [p["id"] for p in client.get(f"/api/papers/{target}/network").json()["data"]] == [source]

        assert client.delete(f"/api/papers/{source}/citations/{target}").status_code == 200
        assert client.delete(f"/api/papers/{source}/citations/{target}").status_code == 404

    def test_duplicate_and_self_citation(self, client):
        source = _create_paper(client, title="source")
        target = _create_paper(client, title="target")
        client.post(f"/api/papers/{source}/citations", json={"targetPaperId": target})

        assert client.post(f"/api/papers/{source}/citations", json={"targetPaperId": target}).status_code == 409
        assert client.post(f"/api/papers/{source}/citations", json={"targetPaperId": source}).status_code == 400
        assert client.post(f"/api/papers/{source}/citations", json={"targetPaperId": "missing"}).status_code == 404

    def test_network_depth_bounds(self, client, paper_id):
        assert client.get(f"/api/papers/{paper_id}/network", params={"depth": 0}).status_code == 422

    def test_relational_only_views(self, client):
        source = _create_paper(client, title="source")
        target = _create_paper(client, title="target")
        client.post(f"/api/papers/{source}/citations", json={"target_paper_id": target})

        stats = client.get(f"/api/papers/{source}/citation-stats")
        assert stats.json()["data"] == {"incoming": 0, "outgoing": 1, "total": 1}
        graph = client.get(f"/api/papers/{target}/citation-graph").json()["data"]
        assert len(graph["nodes"]) == 2
        assert len(graph["edges"]) == 1

        client.post("/api/database/switch", json={"databaseType": "document"})
        response = client.get(f"/api/papers/{source}/citation-stats")
        assert response.status_code == 501
        assert response.json()["error"]["code"] == "NOT_IMPLEMENTED"


class TestNoteRoutes:
    def test_note_lifecycle(self, client, paper_id):
        created = client.post("/api/notes", json={"paper_id": paper_id, "content": "great paper", "tags": ["nlp"]})
        assert created.status_code == 201
        note_id = created.json()["data"]["id"]

        assert client.get("/api/notes", params={"paperId": paper_id}).json()["count"] == 1
        assert client.get("/api/notes", params={"tag": "NLP"}).json()["count"] == 1
        assert client.get("/api/notes", params={"q": "great"}).json()["count"] == 1

        updated = client.put(f"/api/notes/{note_id}", json={"content": "still great"})
        assert updated.json()["data"]["tags"] == ["nlp"]

        assert client.delete(f"/api/notes/{note_id}").status_code == 200
        assert client.get(f"/api/notes/{note_id}").status_code == 404

    def test_note_for_missing_paper(self, client):
        response = client.post("/api/notes", json={"paper_id": "missing", "content": "orphan"})
        assert response.status_code == 404

    def test_annotations(self, client):
        note_id = client.post("/api/notes", json={"content": "annotated"}).json()["data"]["id"]

        added = client.post(f"/api/notes/{note_id}/annotations", json=ANNOTATION)
        assert added.status_code == 201
        annotation_id = added.json()["data"]["annotations"][0]["id"]

        updated = client.put(f"/api/notes/{note_id}/annotations/{annotation_id}", json={"content": "checked"})
        assert updated.json()["data"]["annotations"][0]["content"] == "checked"

        annotated = client.get("/api/notes", params={"paperId": "none", "annotated": True})
        assert annotated.json()["count"] == 0

        removed = client.delete(f"/api/notes/{note_id}/annotations/{annotation_id}")
        assert removed.json()["data"]["annotations"] == []
        assert client.delete(f"/api/notes/{note_id}/annotations/{annotation_id}").status_code == 404
        assert client.post("/api/notes/missing/annotations", json=ANNOTATION).status_code == 404


class TestDatabaseRoutes:
    def test_switch(self, client):
        response = client.post("/api/database/switch", json={"databaseType": "mongodb"})
        assert response.status_code == 200
        assert response.json()["databaseType"] == "document"
        assert client.get("/health").json()["engine"] == "document"

    def test_switch_to_unknown_engine(self, client):
        response = client.post("/api/database/switch", json={"databaseType": "oracle"})
        assert response.status_code == 400

    def test_switch_while_busy(self, client, factory):
        with factory.gate.hold("migration relational -> document"):
            response = client.post("/api/database/switch", json={"databaseType": "document"})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ENGINE_BUSY"

    def test_migrate_and_stats(self, client, paper_id):
        response = client.post(
            "/api/database/migrate",
            json={"fromDatabase": "relational", "toDatabase": "document", "switchAfter": True},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "complete"
        assert data["active_engine"] == "document"

        stats = client.get("/api/database/stats").json()["data"]
        assert stats == {"database_type": "document", "papers": 1, "notes": 0, "citations": None}
        relational = client.get("/api/database/stats", params={"type": "relational"}).json()["data"]
        assert relational == {"database_type": "relational", "papers": 0, "notes": 0, "citations": 0}

    def test_migrate_same_engine(self, client):
        response = client.post("/api/database/migrate", json={"fromDatabase": "document", "toDatabase": "mongodb"})
        assert response.status_code == 400
