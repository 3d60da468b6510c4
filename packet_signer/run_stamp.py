#!/usr/bin/env python3
"""One-off script: list the placeholders in a PDF and stamp it with test values.

Usage: python run_stamp.py <template.pdf> [role=Name ...]
"""

import logging
import sys
from datetime import datetime

from dotenv import load_dotenv

load_dotenv("backend/.env")
sys.path.insert(0, "backend")

from app.services.pdf_stamper import SignerSubmission
from app.services.placeholder_service import (
    get_unique_roles,
    parse_template_placeholders,
    stamp_signatures,
)
from app.services.storage import save_stamped_pdf
from app.services.tag_parser import PlaceholderType

logging.basicConfig(level=logging.INFO)


def dummy_submissions(placeholders, names=None):
    """One submission per role. Text fields get a visible dummy value so gaps stand out;
    dates come from signed_at."""
    names = names or {}
    fields = {
        p.field_name: f"<{p.field_name}>"
        for p in placeholders
        if p.field_name and p.type is not PlaceholderType.DATE
    }
    return [
        SignerSubmission(
            role=role,
            signature_text=names.get(role, f"Test {role}"),
            field_values=fields,
            signed_at=datetime.now(),
        )
        for role in get_unique_roles(placeholders)
    ]


def main():
    if len(sys.argv) < 2:
        print("Usage: python run_stamp.py <template.pdf> [role=Name ...]")
        sys.exit(1)

    pdf_path = sys.argv[1]
    names = dict(arg.split("=", 1) for arg in sys.argv[2:] if "=" in arg)

    placeholders = parse_template_placeholders(pdf_path)
    print(f"\nFound {len(placeholders)} placeholders:")
    for p in placeholders:
        print(f"  [{p.type.value}] {p.field_name or p.role}")
        print(f"    Tag: {p.original_tag}")
        print(f"    Position: page {p.page_number}, ({p.x:.1f}, {p.y:.1f})")

    if not placeholders:
        print("\nNo placeholders found! Check that the PDF carries [[...]] or {{..._es_:...}} tags.")
        return

    stamped = stamp_signatures(pdf_path, dummy_submissions(placeholders, names), placeholders)
    output_path = save_stamped_pdf(stamped, "test")
    print(f"\nStamped PDF ({len(stamped)} bytes) saved to: {output_path}")


if __name__ == "__main__":
    main()
