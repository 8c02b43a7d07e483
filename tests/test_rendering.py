import pytest

from papertrack.citations import CitationFormatter
from papertrack.models import PaperRecord, PdfAttachment
from papertrack.rendering import LibraryView, PaperCard, compute_stats, safe_url


def test_compute_stats_counts_each_status() -> None:
    records = [
        PaperRecord(id=1, status="read"),
        PaperRecord(id=2, status="read"),
        PaperRecord(id=3, status="reading"),
        PaperRecord(id=4),
        PaperRecord(id=5, status="skimmed"),
    ]
    stats = compute_stats(records)
    assert (stats.total, stats.read, stats.reading, stats.to_read, stats.skimmed) == (5, 2, 1, 1, 1)


@pytest.mark.parametrize(
    "value",
    [
        "https://example.org/paper",
        "http://arxiv.org/abs/2101.00001",
    ],
)
def test_safe_url_accepts_public_http_links(value: str) -> None:
    assert safe_url(value) == value


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "10.1000/xyz",
        "javascript:alert(1)",
        "ftp://example.org/file",
        "https://example.org/?next=javascript:alert(1)",
        "https://example.org/img?onerror=x",
        "http://localhost:8000/",
        "http://127.0.0.1/",
        "https://intranet.internal/doc",
        "https://example.org/" + "a" * 2000,
        "https://[broken",
    ],
)
def test_safe_url_rejects_unsafe_links(value) -> None:
    assert safe_url(value) is None


def test_paper_card_display_values() -> None:
    record = PaperRecord(
        id=3,
        status="to-read",
        rating="4",
        keywords="nlp, transformers",
        doi="https://example.org/p",
        pdf=PdfAttachment(has_pdf=True, filename="a.pdf"),
    )
    card = PaperCard.from_record(record, CitationFormatter())

    assert card.title == "Untitled Paper"
    assert card.status_label == "to read"
    assert card.stars == "★★★★"
    assert card.year == "Year not specified"
    assert card.keywords == ["nlp", "transformers"]
    assert card.url == "https://example.org/p"
    assert card.has_pdf is True
    assert str(card.citation_html) == ""


def test_card_escapes_user_text_but_keeps_citation_markup() -> None:
    view = LibraryView(CitationFormatter())
    record = PaperRecord(
        id=1,
        title="<script>alert(1)</script>",
        authors="Doe, J.",
        year="2020",
        journal="Nature",
        notes="a & b",
    )
    view.patch(record)
    fragment = view.fragment(1)

    assert "<script>" not in fragment
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in fragment
    assert "a &amp; b" in fragment
    assert "<em>Nature</em>" in fragment
    assert 'data-paper-url=""' in fragment


def test_page_shows_empty_state_and_stats() -> None:
    view = LibraryView(CitationFormatter())
    assert "No papers added yet. Add some papers to see them here!" in view.page()

    records = [PaperRecord(id=1, title="One", status="read"), PaperRecord(id=2, title="Two")]
    view.render_list(records)
    view.update_stats(compute_stats(records))
    page = view.page()

    assert '<strong id="totalCount">2</strong>' in page
    assert '<strong id="readCount">1</strong>' in page
    assert page.index("One") < page.index("Two")
    assert view.list_render_count == 1


def test_remove_drops_fragment_and_order() -> None:
    view = LibraryView(CitationFormatter())
    view.render_list([PaperRecord(id=1), PaperRecord(id=2)])
    view.remove(1)
    view.remove(99)
    assert view.order == [2]
    assert view.fragment(1) is None
