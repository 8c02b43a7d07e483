from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from papertrack import cli

runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path, monkeypatch) -> Path:
    target = tmp_path / "papertrack-data"
    monkeypatch.setenv("PAPERTRACK_DATA_DIR", str(target))
    monkeypatch.setenv("PAPERTRACK_LOG_LEVEL", "WARNING")
    return target


def _add_sample() -> None:
    result = runner.invoke(
        cli.app,
        ["add", "--title", "Deep Nets", "--authors", "Doe, J.", "--year", "2020", "--journal", "Nature"],
    )
    assert result.exit_code == 0, result.stdout


def test_config_json_flag(data_dir, monkeypatch):
    monkeypatch.setenv("PAPERTRACK_DB_FILENAME", "test.sqlite3")

    result = runner.invoke(cli.app, ["config", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip())
    assert Path(payload["data_dir"]) == data_dir
    assert payload["db_filename"] == "test.sqlite3"
    assert payload["storage_key"] == "research-tracker-data-v1"


def test_add_persists_and_prints_citation(data_dir):
    result = runner.invoke(
        cli.app,
        ["add", "--title", "Deep Nets", "--authors", "Doe, J.", "--year", "2020", "--journal", "Nature"],
    )

    assert result.exit_code == 0
    assert "Added #1: Deep Nets" in result.stdout
    assert "Doe, J. (2020). Deep Nets. Nature." in result.stdout

    cite = runner.invoke(cli.app, ["cite", "1"])
    assert cite.exit_code == 0
    assert "Doe, J. (2020). Deep Nets. Nature." in cite.stdout


def test_set_coerces_invalid_values(data_dir):
    _add_sample()

    result = runner.invoke(cli.app, ["set", "1", "status", "bogus"])
    assert result.exit_code == 0
    assert "status = 'to-read'" in result.stdout

    rejected = runner.invoke(cli.app, ["set", "1", "citation", "forged"])
    assert rejected.exit_code == 1


def test_delete_and_missing_record(data_dir):
    _add_sample()

    result = runner.invoke(cli.app, ["delete", "1", "--yes"])
    assert result.exit_code == 0
    assert "Deleted #1" in result.stdout

    missing = runner.invoke(cli.app, ["delete", "99", "--yes"])
    assert missing.exit_code == 1
    assert "Paper with id 99 not found" in missing.stdout

    listing = runner.invoke(cli.app, ["list"])
    assert "Library is empty" in listing.stdout


def test_export_bibtex(data_dir, tmp_path):
    _add_sample()
    destination = tmp_path / "refs.bib"

    result = runner.invoke(cli.app, ["export", "--format", "bibtex", "--output", str(destination)])

    assert result.exit_code == 0
    text = destination.read_text(encoding="utf-8")
    assert text.startswith("@article{doe2020deepnets,")
    assert "  journal = {Nature}" in text


def test_export_handles_empty_library(data_dir, tmp_path):
    destination = tmp_path / "papers.csv"
    result = runner.invoke(cli.app, ["export", "--format", "csv", "--output", str(destination)])

    assert result.exit_code == 0
    assert "No papers to export." in result.stdout
    assert not destination.exists()


def test_import_then_stats(data_dir, tmp_path):
    source = tmp_path / "papers.csv"
    source.write_text(
        'Title,Authors,Year,Journal/Venue,Keywords,Status\n'
        '"First","Doe, J.",2020,"Nature","",read\n'
        '"Second","Roe, K.",2021,"","",reading\n',
        encoding="utf-8",
    )

    result = runner.invoke(cli.app, ["import", str(source)])
    assert result.exit_code == 0
    assert "Successfully imported 2 papers" in result.stdout

    stats = runner.invoke(cli.app, ["stats"])
    assert stats.exit_code == 0
    assert "Total" in stats.stdout
    assert "Skimmed" in stats.stdout


def test_import_rejects_unknown_extension(data_dir, tmp_path):
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")

    result = runner.invoke(cli.app, ["import", str(source)])

    assert result.exit_code == 1
    assert "Please select a CSV, JSON or BibTeX file" in result.stdout


def test_attach_pdf(data_dir, tmp_path):
    _add_sample()
    pdf = tmp_path / "paper.pdf"
    pdf.write_bytes(b"%PDF-1.4")

    result = runner.invoke(cli.app, ["attach", "1", str(pdf)])

    assert result.exit_code == 0
    assert (data_dir / "pdfs" / "1" / "paper.pdf").read_bytes() == b"%PDF-1.4"


def test_smart_prints_prompt_for_free_text(data_dir):
    result = runner.invoke(cli.app, ["smart", "Attention is all you need"])

    assert result.exit_code == 0
    assert 'The user provided: "Attention is all you need"' in result.stdout


def test_smart_add_inserts_json_draft(data_dir):
    payload = json.dumps({"title": "T", "authors": "Doe, J.", "year": "2020"})

    result = runner.invoke(cli.app, ["smart", payload, "--add"])

    assert result.exit_code == 0
    assert "Paper added successfully to your library!" in result.stdout
    cite = runner.invoke(cli.app, ["cite", "1"])
    assert "Doe, J. (2020). T." in cite.stdout


def test_smart_rejects_empty_input(data_dir):
    result = runner.invoke(cli.app, ["smart", "   "])
    assert result.exit_code == 1
