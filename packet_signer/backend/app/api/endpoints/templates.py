# File: backend/app/api/endpoints/templates.py
"""
Template upload — find the placeholder tags in a PDF and the roles they need.
"""

from fastapi import APIRouter, HTTPException, UploadFile, File, Form
from fastapi.responses import Response
from typing import Any
import logging

from app.schemas.placeholder import PlaceholderListResponse
from app.services.pdf_errors import PdfReadError
from app.services.placeholder_service import get_unique_roles, parse_template_placeholders
from app.services.sample_template import create_sample_template
from app.services.tag_parser import placeholders_to_dicts

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/placeholders", response_model=PlaceholderListResponse)
async def parse_placeholders(
    file: UploadFile = File(...),
) -> Any:
    """Parse an uploaded template and return its placeholders and signer roles."""
    if not (file.filename or "").lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")

    content = await file.read()
    logger.info(f"Read {len(content)} bytes from uploaded template {file.filename}")

    try:
        placeholders = parse_template_placeholders(content)
    except PdfReadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "placeholders": placeholders_to_dicts(placeholders),
        "roles": get_unique_roles(placeholders),
    }


@router.post("/sample")
async def sample_template(
    name: str = Form("Sample Agreement"),
    roles: str = Form(...),
) -> Response:
    """Generate a demo template with a signature and date tag for each comma-separated role."""
    try:
        pdf = create_sample_template(name, roles.split(","))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="sample_template.pdf"'},
    )
