import pytest
from pypdf import PdfReader

from conftest import make_pdf, make_png

from tablemigrate.services.documents import create_placeholder_pdf, image_to_pdf, merge_pdfs


def page_count(path) -> int:
    return len(PdfReader(str(path)).pages)


def test_image_to_pdf_single_page_sized_to_image(tmp_path):
    image = tmp_path / "photo.png"
    image.write_bytes(make_png(size=(200, 100)))
    output = tmp_path / "photo.pdf"

    image_to_pdf(str(image), str(output))

    reader = PdfReader(str(output))
    assert len(reader.pages) == 1
    box = reader.pages[0].mediabox
    assert (round(float(box.width)), round(float(box.height))) == (200, 100)


def test_image_with_transparency_is_flattened(tmp_path):
    image = tmp_path / "logo.png"
    image.write_bytes(make_png(color=(0, 0, 0, 0), mode="RGBA"))
    output = tmp_path / "logo.pdf"

    image_to_pdf(str(image), str(output), quality=50)

    assert page_count(output) == 1


def test_placeholder_pdf(tmp_path):
    output = tmp_path / "placeholder.pdf"
    create_placeholder_pdf("contract.docx", str(output))

    reader = PdfReader(str(output))
    assert len(reader.pages) == 1
    assert round(float(reader.pages[0].mediabox.width)) == 612


def test_merge_preserves_order_and_pages(tmp_path):
    first = tmp_path / "first.pdf"
    second = tmp_path / "second.pdf"
    first.write_bytes(make_pdf(pages=2))
    second.write_bytes(make_pdf(pages=1))
    output = tmp_path / "merged.pdf"

    merge_pdfs([str(first), str(second)], str(output))

    assert page_count(output) == 3


def test_merge_single_input_is_copied(tmp_path):
    only = tmp_path / "only.pdf"
    only.write_bytes(make_pdf(pages=1))
    output = tmp_path / "out.pdf"

    merge_pdfs([str(only)], str(output))

    assert output.read_bytes() == only.read_bytes()


def test_merge_nothing_raises(tmp_path):
    with pytest.raises(ValueError):
        merge_pdfs([], str(tmp_path / "out.pdf"))
