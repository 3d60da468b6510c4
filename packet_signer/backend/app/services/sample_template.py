"""
Sample template generator: a one-page letter-size PDF with a signature block
(signature tag, rule, date tag) per role. Useful for trying the signing flow
without preparing a template by hand.

Layout coordinates below are PDF user space (origin bottom-left) and are
converted to PyMuPDF's top-left space when drawn.
"""

import logging
from typing import List, Tuple

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)


PAGE_WIDTH, PAGE_HEIGHT = 612, 792
BLOCK_TOP = 620
BLOCK_SPACING = 100
TAG_COLOR = (0.6, 0.6, 0.6)
BLACK = (0, 0, 0)


def _point(x: float, y: float) -> fitz.Point:
    return fitz.Point(x, PAGE_HEIGHT - y)


def _text(page: "fitz.Page", at: Tuple[float, float], text: str, size: float,
          bold: bool = False, color=BLACK) -> None:
    page.insert_text(_point(*at), text, fontsize=size, fontname="hebo" if bold else "helv", color=color)


def _clean_roles(roles: List[str]) -> List[str]:
    seen: List[str] = []
    for role in roles:
        role = role.strip()
        if role and role not in seen:
            seen.append(role)
    return seen


def create_sample_template(name: str, roles: List[str]) -> bytes:
    """Build the sample PDF; its tags parse back to one SIGNATURE and one DATE per role."""
    roles = _clean_roles(roles)
    if not roles:
        raise ValueError("At least one role is required")

    doc = fitz.open()
    try:
        page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        _text(page, (50, 720), name, 24, bold=True)
        _text(page, (50, 680), "This document requires signatures from the following parties:", 12)

        y = BLOCK_TOP
        for role in roles:
            if y - 40 < 70:
                logger.warning(f"[SAMPLE] Page full, {role!r} and later roles overflow the page")
            _text(page, (50, y), f"{role[:1].upper()}{role[1:]} Signature:", 12, bold=True)
            _text(page, (50, y - 25), f"[[SIGNATURE:{role}]]", 10, color=TAG_COLOR)
            page.draw_line(_point(50, y - 40), _point(250, y - 40), color=BLACK, width=1)
            _text(page, (300, y - 25), "Date:", 12)
            _text(page, (340, y - 25), f"[[DATE:{role}]]", 10, color=TAG_COLOR)
            y -= BLOCK_SPACING

        _text(page, (50, 50), "This is a sample document for demonstration purposes.", 10)
        logger.info(f"[SAMPLE] Built template {name!r} for roles {roles}")
        return doc.tobytes(garbage=1)
    finally:
        doc.close()
