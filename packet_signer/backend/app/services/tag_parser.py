"""
Tag parser — turns raw tag text into typed placeholders.

Two grammars, tried in this order:

    [[SIGNATURE:role]]  [[DATE:role]]  [[TEXT:fieldName]]
    {{[*]Prefix_es_:role[:kind]}}      (legacy e-sign text tags)

Brace tags are SIGNATURE only with a ``Sig`` prefix and a ``:signature`` kind;
``{{SignerName_es_:signer1}}`` is an ordinary TEXT field.

Unparseable text returns None; the caller skips it.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class PlaceholderType(str, Enum):
    SIGNATURE = "SIGNATURE"
    DATE = "DATE"
    TEXT = "TEXT"


# Fixed widget sizes (width, height) per placeholder type
PLACEHOLDER_SIZES = {
    PlaceholderType.SIGNATURE: (200, 50),
    PlaceholderType.DATE: (100, 25),
    PlaceholderType.TEXT: (150, 25),
}

INITIALS_FIELD = "Int"
SIGNATURE_PREFIX = "Sig"

_BRACKET_RE = re.compile(r"^\[\[(SIGNATURE|DATE|TEXT):([^\]]+)\]\]$")
_BRACE_RE = re.compile(r"^\{\{\*?([^}]+?)_es_:([^}]*)\}\}$")
# A prefix reads as a date marker only when it starts with one ("Updated" stays TEXT);
# a `:date` kind makes any prefix a DATE
_DATE_PREFIX_RE = re.compile(r"^(date|dte)", re.IGNORECASE)


@dataclass
class ParsedTag:
    type: PlaceholderType
    role: str
    field_name: Optional[str] = None


@dataclass
class Placeholder:
    """One positioned, typed tag occurrence. Repeats of the same tag are kept."""
    type: PlaceholderType
    role: str
    original_tag: str
    page_number: int         # 1-based
    x: float
    y: float
    width: float
    height: float
    field_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape consumed by the signing UI."""
        data = {
            "type": self.type.value,
            "role": self.role,
            "originalTag": self.original_tag,
            "pageNumber": self.page_number,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        if self.field_name is not None:
            data["fieldName"] = self.field_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Placeholder":
        return cls(
            type=PlaceholderType(data["type"]),
            role=data["role"],
            original_tag=data.get("originalTag", ""),
            page_number=int(data.get("pageNumber", 1)),
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            width=float(data.get("width", 0)),
            height=float(data.get("height", 0)),
            field_name=data.get("fieldName"),
        )


def _parse_bracket(tag: str, catch_all_role: str) -> Optional[ParsedTag]:
    m = _BRACKET_RE.match(tag)
    if not m:
        return None
    kind, identifier = m.group(1), m.group(2).strip()
    if not identifier:
        return None
    if kind == "TEXT":
        return ParsedTag(PlaceholderType.TEXT, catch_all_role, identifier)
    return ParsedTag(PlaceholderType(kind), identifier)


def _parse_brace(tag: str) -> Optional[ParsedTag]:
    m = _BRACE_RE.match(tag)
    if not m:
        return None
    prefix = m.group(1).strip()
    parts = [p.strip() for p in m.group(2).split(":")]
    role = parts[0]
    kind = parts[1].lower() if len(parts) > 1 and parts[1] else None
    if not prefix or not role:
        return None

    if kind == "signature" and prefix.startswith(SIGNATURE_PREFIX):
        return ParsedTag(PlaceholderType.SIGNATURE, role)
    if kind == "date" or _DATE_PREFIX_RE.match(prefix):
        return ParsedTag(PlaceholderType.DATE, role, prefix)
    if prefix.startswith(INITIALS_FIELD):
        return ParsedTag(PlaceholderType.TEXT, role, INITIALS_FIELD)
    return ParsedTag(PlaceholderType.TEXT, role, prefix)


def parse_tag(tag: str, catch_all_role: Optional[str] = None) -> Optional[ParsedTag]:
    """Classify a raw tag string. Returns None for text matching neither grammar."""
    if catch_all_role is None:
        catch_all_role = settings.CATCH_ALL_ROLE
    parsed = _parse_bracket(tag, catch_all_role) or _parse_brace(tag)
    if parsed is None:
        logger.info(f"[TAGS] Skipping unparseable tag {tag!r}")
    return parsed


def build_placeholder(tag: str, page_index: int, x: float, y: float) -> Optional[Placeholder]:
    parsed = parse_tag(tag)
    if parsed is None:
        return None
    width, height = PLACEHOLDER_SIZES[parsed.type]
    return Placeholder(
        type=parsed.type,
        role=parsed.role,
        field_name=parsed.field_name,
        original_tag=tag,
        page_number=page_index + 1,
        x=x,
        y=y,
        width=width,
        height=height,
    )


def placeholders_to_dicts(placeholders: List[Placeholder]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in placeholders]
