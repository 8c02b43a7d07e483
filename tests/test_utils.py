from papertrack.utils import safe_filename


def test_safe_filename_strips_directories() -> None:
    assert safe_filename("../../evil name.pdf") == "evil-name.pdf"
    assert safe_filename("C:\\papers\\paper.pdf") == "paper.pdf"


def test_safe_filename_default() -> None:
    assert safe_filename("///", default="attachment.pdf") == "attachment.pdf"
