# File: backend/app/api/endpoints/signing.py
"""
Signing completion — stamp every signer's values into the document.
"""

from fastapi import APIRouter, HTTPException, UploadFile, File, Form
from fastapi.responses import Response
from pydantic import ValidationError
from typing import List, Optional
import json
import os
import logging

from app.schemas.placeholder import SignerSubmissionSchema
from app.services.pdf_errors import PdfNormalizationError, PdfReadError
from app.services.pdf_stamper import SignerSubmission
from app.services.placeholder_service import stamp_signatures
from app.services.storage import save_stamped_pdf
from app.services.tag_parser import Placeholder

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse_submissions(raw: str) -> List[SignerSubmission]:
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError("submissions must be a JSON array")
        schemas = [SignerSubmissionSchema(**item) for item in items]
    except (ValueError, TypeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid submissions: {e}")
    return [
        SignerSubmission(
            role=s.role,
            signature_text=s.signatureText,
            signature_kind=s.signatureKind,
            date_text=s.dateText,
            field_values=dict(s.fieldValues),
            signature_image=s.signatureImage,
        )
        for s in schemas
    ]


def _parse_placeholders(raw: Optional[str]) -> Optional[List[Placeholder]]:
    if not raw:
        return None
    try:
        return [Placeholder.from_dict(item) for item in json.loads(raw)]
    except (ValueError, TypeError, KeyError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid placeholders: {e}")


@router.post("/stamp")
async def stamp_document(
    file: UploadFile = File(...),
    submissions: str = Form(...),  # JSON array of signer submissions
    placeholders: Optional[str] = Form(None),  # JSON array from /templates/placeholders
    packet_id: Optional[str] = Form(None),  # When set, the result is also saved to disk
) -> Response:
    """Stamp the uploaded PDF and return the signed document."""
    signer_submissions = _parse_submissions(submissions)
    placeholder_list = _parse_placeholders(placeholders)

    content = await file.read()
    logger.info(f"Stamping {file.filename} ({len(content)} bytes) for {len(signer_submissions)} signer(s)")

    try:
        stamped = stamp_signatures(content, signer_submissions, placeholder_list)
    except PdfReadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PdfNormalizationError as e:
        logger.error(f"Stamped document failed normalization: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    filename = "signed.pdf"
    if packet_id:
        path = save_stamped_pdf(stamped, packet_id)
        filename = os.path.basename(path)

    return Response(
        content=stamped,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
