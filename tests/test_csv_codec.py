import pytest

from papertrack.codecs import CodecError, decode_csv, encode_csv, parse_csv_line
from papertrack.codecs.csv_codec import LEGACY_LAYOUT, NEW_LAYOUT
from papertrack.models import PaperRecord, PdfAttachment


def _record(**fields) -> PaperRecord:
    base = {"id": 1, "title": "T", "authors": "Doe, J.", "year": "2020", "date_added": "2024-01-01"}
    base.update(fields)
    return PaperRecord(**base)


def test_parse_csv_line_handles_quotes_and_empty_fields() -> None:
    assert parse_csv_line('"a ""q""",b,,"c,d"') == ['a "q"', "b", "", "c,d"]
    assert parse_csv_line("") == [""]


def test_parse_csv_line_rejects_overlong_lines() -> None:
    with pytest.raises(CodecError):
        parse_csv_line("x" * 11, max_length=10)


def test_new_layout_round_trip() -> None:
    record = _record(
        journal="Nature",
        notes='Uses "quotes", commas\nand a newline',
        status="read",
        rating="4",
        pdf=PdfAttachment(has_pdf=True, source="local", path="/tmp/a.pdf", filename="a.pdf"),
    )
    text = encode_csv([record])
    header = text.splitlines()[0]
    assert header.split(",")[: 3] == ["Item Type", "Title", "Authors"]
    assert len(header.split(",")) == len(NEW_LAYOUT)

    result = decode_csv(text)

    assert result.skipped == 0
    [draft] = result.drafts
    assert draft.title == "T"
    assert draft.journal == "Nature"
    assert draft.notes == 'Uses "quotes", commas\nand a newline'
    assert draft.status == "read"
    assert draft.rating == "4"
    assert draft.pdf == {"hasPdf": True, "source": "import", "path": "a.pdf", "filename": "a.pdf"}


def test_legacy_layout_round_trip() -> None:
    record = _record(journal="Science", keywords="a, b", doi="10.1/x")
    text = encode_csv([record], layout="legacy")
    assert len(text.splitlines()[0].split(",")) == len(LEGACY_LAYOUT)

    [draft] = decode_csv(text).drafts

    assert draft.journal == "Science"
    assert draft.keywords == "a, b"
    assert draft.doi == "10.1/x"
    assert draft.item_type is None


def test_relevance_column_fills_empty_notes() -> None:
    header = ",".join(column.header for column in NEW_LAYOUT)
    values = ["article", '"T"', '"A"', "2020"] + ['""'] * (len(NEW_LAYOUT) - 4)
    values[13] = '"legacy relevance"'
    [draft] = decode_csv(header + "\n" + ",".join(values) + "\n").drafts
    assert draft.notes == "legacy relevance"


def test_bad_rows_are_skipped() -> None:
    text = "\n".join(
        [
            "Title,Authors,Year",
            '"Kept","Doe, J.",2020',
            "short,row",
            '"' + "x" * 100 + '",c,d',
            "",
            '"Also kept","Roe, K.",2021',
        ]
    )
    result = decode_csv(text, max_line_length=60)
    assert [draft.title for draft in result.drafts] == ["Kept", "Also kept"]
    assert result.skipped == 2


def test_row_limit() -> None:
    text = "Title,Authors,Year\n" + "\n".join(f'"P{n}","A",2020' for n in range(5))
    result = decode_csv(text, max_rows=2)
    assert [draft.title for draft in result.drafts] == ["P0", "P1"]


def test_byte_order_mark_and_crlf() -> None:
    text = "\ufeffTitle,Authors,Year\r\n\"T\",\"A\",2020\r\n"
    [draft] = decode_csv(text).drafts
    assert draft.title == "T"
    assert draft.year == "2020"


@pytest.mark.parametrize("text", ["", "\n\n", "\ufeff"])
def test_empty_file_is_rejected(text: str) -> None:
    with pytest.raises(CodecError):
        decode_csv(text)
