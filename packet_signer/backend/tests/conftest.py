"""
Shared fixtures: small hand-built PDFs whose content streams contain exactly
the operators a test needs.

Run: pytest packet_signer/backend/tests -v
"""

import os
import sys
import zlib
from typing import Dict, Tuple, Union

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


FONT = "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>"
PAGE_RESOURCES = "<< /Font << /F1 5 0 R >> >>"

# id → dict text, or (dict text, stream bytes[, compress])
ObjectSpec = Union[str, Tuple]


def build_pdf(objects: Dict[int, ObjectSpec], root: int = 1) -> bytes:
    """Serialize objects into a PDF with a correct xref table."""
    out = bytearray(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n")
    offsets = {}
    for obj_id in sorted(objects):
        entry = objects[obj_id]
        offsets[obj_id] = len(out)
        out += f"{obj_id} 0 obj\n".encode("ascii")
        if isinstance(entry, str):
            out += entry.encode("latin-1") + b"\n"
        else:
            dict_text, data = entry[0], entry[1]
            compress = entry[2] if len(entry) > 2 else True
            extra = ""
            if compress:
                data = zlib.compress(data)
                extra = " /Filter /FlateDecode"
            inner = dict_text.strip()[2:-2]
            out += f"<<{inner} /Length {len(data)}{extra} >>\nstream\n".encode("latin-1")
            out += data + b"\nendstream\n"
        out += b"endobj\n"

    xref_at = len(out)
    size = max(objects) + 1
    out += f"xref\n0 {size}\n".encode("ascii")
    out += b"0000000000 65535 f \n"
    for i in range(1, size):
        if i in offsets:
            out += f"{offsets[i]:010d} 00000 n \n".encode("ascii")
        else:
            out += b"0000000000 65535 f \n"
    out += f"trailer\n<< /Size {size} /Root {root} 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode("ascii")
    return bytes(out)


def single_page_pdf(content: bytes, compress: bool = True) -> bytes:
    """One Letter page (object 3) whose content stream is object 4."""
    return build_pdf({
        1: "<< /Type /Catalog /Pages 2 0 R >>",
        2: "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Resources {PAGE_RESOURCES} /Contents 4 0 R >>",
        4: ("<< >>", content, compress),
        5: FONT,
    })


def xobject_pdf(form_content: bytes = b"BT /F1 10 Tf 1 0 0 1 10 15 Tm ([[SIGNATURE:manager]]) Tj ET") -> bytes:
    """Two pages; page 2 draws Form XObject /Fm1 (object 8) at (100, 200)."""
    return build_pdf({
        1: "<< /Type /Catalog /Pages 2 0 R >>",
        2: "<< /Type /Pages /Kids [3 0 R 6 0 R] /Count 2 >>",
        3: f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Resources {PAGE_RESOURCES} /Contents 4 0 R >>",
        4: ("<< >>", b"BT /F1 12 Tf 1 0 0 1 72 720 Tm (Cover page) Tj ET"),
        5: FONT,
        6: (
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            "/Resources << /Font << /F1 5 0 R >> /XObject << /Fm1 8 0 R >> >> /Contents 7 0 R >>"
        ),
        7: ("<< >>", b"q 1 0 0 1 100 200 cm /Fm1 Do Q"),
        8: (
            "<< /Type /XObject /Subtype /Form /BBox [0 0 300 100] /Resources << /Font << /F1 5 0 R >> >> >>",
            form_content,
        ),
    })


ADOBE_TAGS_CONTENT = (
    b"BT /F1 11 Tf 1 0 0 1 50 700 Tm (Employee: {{TitleA_es_:signer1}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 680 Tm (Employee ID: {{NumA_es_:signer1}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 640 Tm (Date: {{DateA_es_:signer1:date}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 600 Tm (Signature: {{Sig_es_:signer1:signature}}) Tj ET\n"
)

CUSTOM_TAGS_CONTENT = (
    b"BT /F1 11 Tf 1 0 0 1 50 700 Tm (Please sign here: [[SIGNATURE:employee]]) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 660 Tm (Date: [[DATE:employee]]) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 620 Tm (Comment: [[TEXT:comment]]) Tj ET\n"
)

MULTI_SIGNER_CONTENT = (
    b"BT /F1 11 Tf 1 0 0 1 50 700 Tm (Employee: {{Name_es_:signer1}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 660 Tm (Signature: {{Sig_es_:signer1:signature}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 620 Tm (Date: {{DateA_es_:signer1:date}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 560 Tm (Supervisor: {{SuperName_es_:signer2}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 520 Tm (Supervisor Signature: {{Sig2_es_:signer2:signature}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 480 Tm (Approval Date: {{DateB_es_:signer2:date}}) Tj ET\n"
)

REPEATED_SIG_CONTENT = (
    b"BT /F1 11 Tf 1 0 0 1 50 600 Tm (Signature: {{Sig_es_:signer1:signature}}) Tj ET\n"
    b"BT /F1 11 Tf 1 0 0 1 50 300 Tm ({{Sig_es_:signer1:signature}}) Tj ET\n"
)


@pytest.fixture
def adobe_tags_pdf() -> bytes:
    return single_page_pdf(ADOBE_TAGS_CONTENT)


@pytest.fixture
def custom_tags_pdf() -> bytes:
    return single_page_pdf(CUSTOM_TAGS_CONTENT)


@pytest.fixture
def multi_signer_pdf() -> bytes:
    return single_page_pdf(MULTI_SIGNER_CONTENT)


@pytest.fixture
def repeated_sig_pdf() -> bytes:
    return single_page_pdf(REPEATED_SIG_CONTENT)


@pytest.fixture
def form_xobject_pdf() -> bytes:
    return xobject_pdf()


@pytest.fixture(autouse=True)
def no_completion_footer(monkeypatch):
    """Keep stamped streams exact; footer tests pass completion_footer=True."""
    from app.core.config import settings
    monkeypatch.setattr(settings, "COMPLETION_FOOTER", False)
