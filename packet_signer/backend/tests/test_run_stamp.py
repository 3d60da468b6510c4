"""
The manual stamping script's dummy values.

Run: pytest packet_signer/backend/tests/test_run_stamp.py -v
"""

import os
import sys

import fitz

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from run_stamp import dummy_submissions  # noqa: E402
from app.services.placeholder_service import parse_template_placeholders, stamp_signatures  # noqa: E402


class TestDummySubmissions:

    def test_date_fields_get_no_dummy_value(self, adobe_tags_pdf):
        (sub,) = dummy_submissions(parse_template_placeholders(adobe_tags_pdf))
        assert sub.role == "signer1"
        assert sub.field_values == {"TitleA": "<TitleA>", "NumA": "<NumA>"}

    def test_names_by_role(self, multi_signer_pdf):
        subs = dummy_submissions(parse_template_placeholders(multi_signer_pdf), {"signer2": "Bob Lee"})
        assert [(s.role, s.signature_text) for s in subs] == [("signer1", "Test signer1"), ("signer2", "Bob Lee")]

    def test_dates_stamped_from_signing_time(self, adobe_tags_pdf):
        placeholders = parse_template_placeholders(adobe_tags_pdf)
        subs = dummy_submissions(placeholders)
        out = stamp_signatures(adobe_tags_pdf, subs, placeholders)
        doc = fitz.open(stream=out, filetype="pdf")
        try:
            text = doc[0].get_text()
        finally:
            doc.close()
        assert "<DateA>" not in text
        assert subs[0].signed_at.strftime("%B %d, %Y") in text
