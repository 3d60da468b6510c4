"""
Overlays drawn on top of an already stamped document with PyMuPDF.

- drawn signatures: the signer's PNG is placed in the SIGNATURE placeholder
  rectangle, sitting on the tag's baseline. The typed name stamped in place
  stays underneath as the caption, and is all that remains when the image
  cannot be decoded or embedded.
- completion footer: "Document completed: <timestamp>" at the bottom of the
  last page.

Placeholder coordinates are PDF user space (origin bottom-left); they are
mapped to PyMuPDF's top-left space through ``page.transformation_matrix``.
"""

import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

import fitz  # PyMuPDF

from app.core.config import settings
from app.services.pdf_errors import PdfNormalizationError
from app.services.pdf_stamper import SignerSubmission
from app.services.tag_parser import Placeholder, PlaceholderType

logger = logging.getLogger(__name__)


_DATA_URL_RE = re.compile(r"^data:image/\w+;base64,")

FOOTER_POSITION = (50, 30)
FOOTER_FONT_SIZE = 8
FOOTER_COLOR = (0.5, 0.5, 0.5)


def decode_signature_image(data: Optional[str]) -> Optional[bytes]:
    """Base64 (optionally a data: URL) → raw image bytes, or None if it does not decode."""
    if not data:
        return None
    try:
        raw = base64.b64decode(_DATA_URL_RE.sub("", data.strip()), validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"[OVERLAY] Signature image is not valid base64: {e}")
        return None
    return raw or None


def drawn_signatures(submissions: List[SignerSubmission]) -> Dict[str, bytes]:
    """role → image bytes for every submission that drew its signature."""
    images: Dict[str, bytes] = {}
    for sub in submissions:
        if sub.signature_kind != "drawn" or sub.role in images:
            continue
        image = decode_signature_image(sub.signature_image)
        if image is None:
            logger.info(f"[OVERLAY] No usable drawing for {sub.role}, keeping the typed name only")
            continue
        images[sub.role] = image
    return images


def _insert_signature(page: "fitz.Page", placeholder: Placeholder, image: bytes) -> bool:
    pdf_rect = fitz.Rect(
        placeholder.x,
        placeholder.y,
        placeholder.x + placeholder.width,
        placeholder.y + placeholder.height,
    )
    rect = pdf_rect * page.transformation_matrix
    rect.normalize()
    try:
        page.insert_image(rect, stream=image, keep_proportion=True, overlay=True)
    except Exception as e:
        logger.warning(
            f"[OVERLAY] Could not embed drawing for {placeholder.role} on page "
            f"{placeholder.page_number}: {e}; typed name kept"
        )
        return False
    return True


def _insert_footer(page: "fitz.Page", completed_at: datetime) -> None:
    point = fitz.Point(*FOOTER_POSITION) * page.transformation_matrix
    page.insert_text(
        point,
        f"Document completed: {completed_at.isoformat(timespec='seconds')}",
        fontsize=FOOTER_FONT_SIZE,
        fontname="helv",
        color=FOOTER_COLOR,
    )


def apply_overlays(
    pdf_bytes: bytes,
    placeholders: List[Placeholder],
    submissions: List[SignerSubmission],
    completion_footer: Optional[bool] = None,
    completed_at: Optional[datetime] = None,
) -> bytes:
    """Embed drawn signatures and the completion footer. Returns the bytes unchanged when neither applies."""
    if completion_footer is None:
        completion_footer = settings.COMPLETION_FOOTER
    images = drawn_signatures(submissions)
    if not images and not completion_footer:
        return pdf_bytes

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise PdfNormalizationError(f"Stamped document could not be reopened: {e}") from e
    try:
        embedded = 0
        for p in placeholders:
            if p.type is not PlaceholderType.SIGNATURE or p.role not in images:
                continue
            if not 1 <= p.page_number <= doc.page_count:
                logger.warning(f"[OVERLAY] Page {p.page_number} out of range for {p.original_tag!r}")
                continue
            if _insert_signature(doc[p.page_number - 1], p, images[p.role]):
                embedded += 1
        if embedded:
            logger.info(f"[OVERLAY] Embedded {embedded} drawn signature(s)")

        if completion_footer and doc.page_count:
            _insert_footer(doc[doc.page_count - 1], completed_at or datetime.now(timezone.utc))

        try:
            return doc.tobytes(garbage=1)
        except Exception as e:
            raise PdfNormalizationError(f"Document could not be saved after overlays: {e}") from e
    finally:
        doc.close()
