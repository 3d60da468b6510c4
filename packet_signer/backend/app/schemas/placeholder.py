# File: backend/app/schemas/placeholder.py
from pydantic import BaseModel
from typing import Dict, List, Literal, Optional


class PlaceholderSchema(BaseModel):
    type: Literal["SIGNATURE", "DATE", "TEXT"]
    role: str
    fieldName: Optional[str] = None
    originalTag: str
    pageNumber: int  # 1-based
    x: float
    y: float
    width: float
    height: float


class PlaceholderListResponse(BaseModel):
    placeholders: List[PlaceholderSchema]
    roles: List[str]  # Distinct SIGNATURE/DATE roles needing a recipient


class SignerSubmissionSchema(BaseModel):
    role: str
    signatureText: str = ""
    signatureKind: Literal["drawn", "typed"] = "typed"
    dateText: Optional[str] = None
    fieldValues: Dict[str, str] = {}
    signatureImage: Optional[str] = None  # Base64 PNG when drawn
