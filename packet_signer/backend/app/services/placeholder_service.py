"""
Placeholder service — the entry points the signing workflow calls.

    parse_template_placeholders(pdf)   → List[Placeholder]
    get_unique_roles(placeholders)     → roles that need a recipient
    stamp_signatures(pdf, submissions) → stamped PDF bytes

Every call is independent: structural maps are rebuilt from the bytes each
time and nothing is cached between documents.
"""

import logging
import os
from typing import List, Optional, Union

from app.services.pdf_errors import PdfReadError
from app.services.pdf_index import build_index
from app.services.pdf_stamper import SignerSubmission, ValueMap, stamp_pdf
from app.services.signature_overlay import apply_overlays
from app.services.tag_parser import Placeholder, PlaceholderType, build_placeholder
from app.services.tag_scanner import scan_tag_locations

logger = logging.getLogger(__name__)

PdfSource = Union[str, os.PathLike, bytes]


def read_pdf(source: PdfSource) -> bytes:
    """Accept raw bytes or a filesystem path."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    try:
        with open(source, "rb") as f:
            return f.read()
    except OSError as e:
        raise PdfReadError(f"Cannot read {source}: {e}") from e


def parse_template_placeholders(source: PdfSource) -> List[Placeholder]:
    """Find every tag occurrence in a template and return one Placeholder each.

    Repeated tags are kept (a tag may appear in several table cells and all of
    them must be stamped). Occurrences whose position could not be resolved are
    dropped.
    """
    pdf_bytes = read_pdf(source)
    index = build_index(pdf_bytes)
    placeholders: List[Placeholder] = []
    for loc in scan_tag_locations(index):
        placeholder = build_placeholder(loc.tag_text, loc.page_index, loc.x, loc.y)
        if placeholder is not None:
            placeholders.append(placeholder)
    logger.info(f"Parsed {len(placeholders)} placeholders from {len(index.pages)} page(s)")
    return placeholders


def get_unique_roles(placeholders: List[Placeholder]) -> List[str]:
    """Distinct roles of SIGNATURE/DATE placeholders, in first-seen order."""
    roles: List[str] = []
    for p in placeholders:
        if p.type is not PlaceholderType.TEXT and p.role not in roles:
            roles.append(p.role)
    return roles


def filter_placeholders_for_role(placeholders: List[Placeholder], role: str) -> List[Placeholder]:
    """Placeholders a recipient fills in: every TEXT/DATE, plus SIGNATUREs for their role.

    Roles match on a shared prefix too, so a ``signer`` recipient sees ``signer1`` tags.
    """
    result = []
    for p in placeholders:
        if p.type is not PlaceholderType.SIGNATURE:
            result.append(p)
        elif p.role == role or role.startswith(p.role) or p.role.startswith(role):
            result.append(p)
    return result


def stamp_signatures(
    source: PdfSource,
    submissions: List[SignerSubmission],
    placeholders: Optional[List[Placeholder]] = None,
    completion_footer: Optional[bool] = None,
) -> bytes:
    """Stamp every signer's values into the document, then lay drawn signatures and the footer over it."""
    pdf_bytes = read_pdf(source)
    if placeholders is None:
        placeholders = parse_template_placeholders(pdf_bytes)
    value_map = ValueMap.from_submissions(submissions)
    logger.info(
        f"Stamping {len(placeholders)} placeholders for roles "
        f"{[s.role for s in submissions]}"
    )
    stamped = stamp_pdf(pdf_bytes, placeholders, value_map)
    return apply_overlays(stamped, placeholders, submissions, completion_footer)
