"""
Object arena and page classification tests.

Run: pytest packet_signer/backend/tests/test_pdf_index.py -v
"""

import zlib

import pytest

from app.services.pdf_errors import PdfReadError
from app.services.pdf_index import build_index, content_stream_ids, inflate, is_page_dictionary

from conftest import FONT, build_pdf, single_page_pdf, xobject_pdf


class TestBuildIndex:

    def test_rejects_empty(self):
        with pytest.raises(PdfReadError):
            build_index(b"")

    def test_rejects_non_pdf(self):
        with pytest.raises(PdfReadError):
            build_index(b"hello world, not a pdf")

    def test_objects_and_streams(self):
        index = build_index(single_page_pdf(b"BT (x) Tj ET"))
        assert sorted(index.objects) == [1, 2, 3, 4, 5]
        assert [o.obj_id for o in index.stream_objects()] == [4]
        assert index.objects[4].length_span is not None

    def test_single_page(self):
        index = build_index(single_page_pdf(b"BT (x) Tj ET"))
        assert len(index.pages) == 1
        assert index.pages[0].obj_id == 3
        assert index.stream_to_page == {4: 0}
        assert index.page_index == {3: 0}

    def test_pages_object_is_not_a_page(self):
        index = build_index(xobject_pdf())
        assert [p.obj_id for p in index.pages] == [3, 6]

    def test_form_xobject_is_not_page_content(self):
        index = build_index(xobject_pdf())
        assert 8 not in index.stream_to_page
        assert index.stream_to_page == {4: 0, 7: 1}

    def test_later_definition_wins(self):
        pdf = single_page_pdf(b"BT (x) Tj ET")
        update = b"5 0 obj\n<< /Type /Font /Subtype /Type1 /BaseFont /Courier >>\nendobj\n"
        index = build_index(pdf + update)
        assert "/Courier" in index.objects[5].dict_text


class TestStreams:

    def test_compressed_stream_decodes(self):
        index = build_index(single_page_pdf(b"BT (hello) Tj ET"))
        decoded = index.decode_stream(4)
        assert decoded.compressed is True
        assert decoded.text == "BT (hello) Tj ET"

    def test_uncompressed_stream_falls_back_to_literal(self):
        index = build_index(single_page_pdf(b"BT (hello) Tj ET", compress=False))
        decoded = index.decode_stream(4)
        assert decoded.compressed is False
        assert decoded.text == "BT (hello) Tj ET"

    def test_non_stream_decodes_to_none(self):
        index = build_index(single_page_pdf(b"BT (x) Tj ET"))
        assert index.decode_stream(3) is None

    def test_size_guard_skips_stream(self):
        index = build_index(single_page_pdf(b"BT (hello) Tj ET", compress=False), max_stream_bytes=4)
        assert index.decode_stream(4) is None

    def test_wrong_length_falls_back_to_endstream(self):
        pdf = single_page_pdf(b"BT (hello) Tj ET", compress=False)
        pdf = pdf.replace(b"/Length 16", b"/Length 99")
        index = build_index(pdf)
        assert index.decode_stream(4).text == "BT (hello) Tj ET"

    def test_indirect_length(self):
        content = b"BT (indirect) Tj ET"
        pdf = build_pdf({
            1: "<< /Type /Catalog /Pages 2 0 R >>",
            2: "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            3: "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R >>",
            5: FONT,
        })
        stream = b"4 0 obj\n<< /Length 6 0 R >>\nstream\n" + content + b"\nendstream\nendobj\n"
        index = build_index(pdf + stream + f"6 0 obj\n{len(content)}\nendobj\n".encode("ascii"))
        assert index.objects[4].length_span is None
        assert index.decode_stream(4).text == "BT (indirect) Tj ET"

    def test_inflate_ignores_trailing_bytes(self):
        assert inflate(zlib.compress(b"abc") + b"\r\n") == b"abc"

    def test_inflate_rejects_plain_bytes(self):
        assert inflate(b"BT ET") is None
        assert inflate(b"") is None


class TestPageHeuristic:

    @pytest.mark.parametrize("dict_text", [
        "<< /Type /Page /Contents 4 0 R >>",
        "<< /MediaBox [0 0 10 10] /Contents 4 0 R >>",
        "<< /CropBox [0 0 10 10] /Contents 4 0 R >>",
        "<< /Parent 2 0 R /Contents 4 0 R >>",
    ])
    def test_page_like(self, dict_text):
        assert is_page_dictionary(dict_text)

    @pytest.mark.parametrize("dict_text", [
        "<< /Type /Page /MediaBox [0 0 10 10] >>",
        "<< /Type /Pages /Kids [3 0 R] /Contents 4 0 R >>",
        "<< /Contents 4 0 R >>",
    ])
    def test_not_page_like(self, dict_text):
        assert not is_page_dictionary(dict_text)

    def test_contents_array(self):
        pdf = build_pdf({
            1: "<< /Type /Catalog /Pages 2 0 R >>",
            2: "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            3: "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents [4 0 R 6 0 R] >>",
            4: ("<< >>", b"BT (a) Tj ET"),
            6: ("<< >>", b"BT (b) Tj ET"),
        })
        index = build_index(pdf)
        assert index.pages[0].content_ids == [4, 6]
        assert index.stream_to_page == {4: 0, 6: 0}

    def test_contents_referenced_array_object(self):
        pdf = build_pdf({
            1: "<< /Type /Catalog /Pages 2 0 R >>",
            2: "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            3: "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 7 0 R >>",
            4: ("<< >>", b"BT (a) Tj ET"),
            6: ("<< >>", b"BT (b) Tj ET"),
            7: "[4 0 R 6 0 R]",
        })
        index = build_index(pdf)
        assert content_stream_ids(index.objects[3].dict_text, index.objects) == [4, 6]

    def test_page_without_resolvable_contents_is_skipped(self):
        pdf = build_pdf({
            1: "<< /Type /Catalog /Pages 2 0 R >>",
            2: "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            3: "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 9 0 R >>",
        })
        assert build_index(pdf).pages == []
