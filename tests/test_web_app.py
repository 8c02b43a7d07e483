import json

from fastapi.testclient import TestClient

from papertrack.settings import Settings
from papertrack.web.app import create_app

BIBTEX = b"""@article{doe2020,
  title = {Imported Paper},
  author = {Doe, J.},
  journal = {Nature},
  year = {2020}
}
"""


def _client(tmp_path) -> TestClient:
    return TestClient(create_app(Settings(data_dir=tmp_path)))


def _add(client: TestClient, **fields) -> None:
    data = {"title": "Deep Nets", "authors": "Doe, J.", "year": "2020", "journal": "Nature"}
    data.update(fields)
    response = client.post("/papers", data=data, follow_redirects=True)
    assert response.status_code == 200


def test_dashboard_home_loads(tmp_path) -> None:
    client = _client(tmp_path)
    response = client.get("/")
    assert response.status_code == 200
    assert "No papers added yet. Add some papers to see them here!" in response.text


def test_create_paper_renders_card_and_citation(tmp_path) -> None:
    client = _client(tmp_path)
    _add(client, status="read")

    response = client.get("/")
    assert "Deep Nets" in response.text
    assert "Doe, J. (2020). Deep Nets. <em>Nature</em>." in response.text
    assert '<strong id="readCount">1</strong>' in response.text
    assert client.app.state.library.store.get(1).status == "read"


def test_update_and_delete(tmp_path) -> None:
    client = _client(tmp_path)
    _add(client)
    library = client.app.state.library

    response = client.post("/papers/1", data={"field": "title", "value": "Renamed"}, follow_redirects=True)
    assert response.status_code == 200
    assert library.store.get(1).title == "Renamed"
    assert library.store.get(1).citation == "Doe, J. (2020). Renamed. Nature."

    response = client.post("/papers/1/delete", follow_redirects=True)
    assert response.status_code == 200
    assert len(library.store) == 0


def test_missing_paper_returns_404(tmp_path) -> None:
    client = _client(tmp_path)
    assert client.post("/papers/99", data={"field": "title", "value": "x"}).status_code == 404
    assert client.post("/papers/99/delete").status_code == 404
    assert client.get("/papers/99/pdf").status_code == 404


def test_pdf_upload_and_download(tmp_path) -> None:
    client = _client(tmp_path)
    _add(client)

    response = client.post(
        "/papers/1/pdf",
        files={"file": ("paper.pdf", b"%PDF-1.4", "application/pdf")},
        follow_redirects=True,
    )
    assert response.status_code == 200

    download = client.get("/papers/1/pdf")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4"
    assert "PDF attached" in client.get("/").text


def test_export_json(tmp_path) -> None:
    client = _client(tmp_path)
    _add(client)

    response = client.get("/export/json")

    assert response.status_code == 200
    assert 'filename="papers_' in response.headers["content-disposition"]
    document = json.loads(response.text)
    assert document["metadata"]["recordCount"] == 1
    assert document["papers"][0]["title"] == "Deep Nets"


def test_unknown_export_format(tmp_path) -> None:
    client = _client(tmp_path)
    assert client.get("/export/xml").status_code == 404


def test_import_upload(tmp_path) -> None:
    client = _client(tmp_path)

    response = client.post(
        "/import",
        files={"file": ("refs.bib", BIBTEX, "application/x-bibtex")},
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert "Successfully imported 1 papers" in response.text
    assert "Imported Paper" in response.text


def test_import_rejection_is_shown(tmp_path) -> None:
    client = _client(tmp_path)

    response = client.post(
        "/import",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert "Please select a CSV, JSON or BibTeX file" in response.text
    assert len(client.app.state.library.store) == 0


def test_library_survives_restart(tmp_path) -> None:
    _add(_client(tmp_path))

    response = _client(tmp_path).get("/")
    assert "Deep Nets" in response.text
