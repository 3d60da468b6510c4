"""
Stamper — rewrites placeholder tags in place with signer-supplied values.

Architecture: rather than drawing new text on top of the page, every stream
that carries a tag is decoded, the show-text operator holding the tag is
re-emitted with the value substituted, and the stream is recompressed and
spliced back at its original byte offsets. Fonts, positioning and the rest of
the page stay untouched.

    (Signature: {{Sig_es_:signer1:signature}}) Tj
        ↓
    (Signature: ) Tj q 1 0 0.2 1 -140 0 cm 0 0 0.5 rg (Jane Smith) Tj Q

Signature values get a shear anchored at the tag's baseline plus ink colour;
other values only get the ink colour. A tag with no value is left as-is so the
gap is visible in the output.

The spliced bytes are opened and re-saved once with PyMuPDF to repair
anything the splicing left inconsistent (xref offsets, lengths). Drawn
signature images and the completion footer are added afterwards by
signature_overlay.
"""

import logging
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

import fitz  # PyMuPDF

from app.core.config import settings
from app.services.pdf_errors import PdfNormalizationError
from app.services.pdf_index import build_index
from app.services.tag_parser import (
    INITIALS_FIELD,
    ParsedTag,
    Placeholder,
    PlaceholderType,
    parse_tag,
)
from app.services.tag_scanner import (
    TAG_RE,
    ShowTextOp,
    StreamGeometry,
    encode_hex_string,
    escape_literal,
    find_show_text_ops,
    find_tag_occurrences,
)

logger = logging.getLogger(__name__)


DATE_FORMAT = "%B %d, %Y"


# ─── Values ────────────────────────────────────────────────────────────────

@dataclass
class SignerSubmission:
    """What one signer submitted. Drawn signatures also stamp the typed name in place."""
    role: str
    signature_text: str = ""
    signature_kind: str = "typed"          # "typed" | "drawn"
    date_text: Optional[str] = None
    field_values: Dict[str, str] = field(default_factory=dict)
    signed_at: Optional[datetime] = None
    signature_image: Optional[str] = None  # Base64 PNG, embedded over the typed name when drawn


def initials_of(name: str) -> str:
    return "".join(part[0].upper() for part in name.split() if part)


class ValueMap:
    """Role/field keyed lookup of final stamped strings."""

    def __init__(self):
        self.signatures: Dict[str, str] = {}
        self.dates: Dict[str, str] = {}
        self.fields: Dict[str, Dict[str, str]] = {}   # role → field → value
        self.initials: Dict[str, str] = {}

    @classmethod
    def from_submissions(cls, submissions: List[SignerSubmission]) -> "ValueMap":
        vm = cls()
        for sub in submissions:
            if sub.signature_text:
                vm.signatures.setdefault(sub.role, sub.signature_text)
                vm.initials.setdefault(sub.role, initials_of(sub.signature_text))
            if sub.date_text:
                vm.dates.setdefault(sub.role, sub.date_text)
            elif sub.signed_at is not None:
                vm.dates.setdefault(sub.role, sub.signed_at.strftime(DATE_FORMAT))
            fields = vm.fields.setdefault(sub.role, {})
            for name, value in (sub.field_values or {}).items():
                if value:
                    fields.setdefault(name, value)
        return vm

    def __len__(self) -> int:
        return len(self.signatures) + len(self.dates) + sum(len(f) for f in self.fields.values())

    def _field(self, role: str, name: str) -> Optional[str]:
        value = self.fields.get(role, {}).get(name)
        if value:
            return value
        # Fields are shared: fall back to whichever signer supplied it
        for values in self.fields.values():
            if values.get(name):
                return values[name]
        return None

    def lookup(self, tag_type: PlaceholderType, role: str, field_name: Optional[str] = None) -> Optional[str]:
        if tag_type is PlaceholderType.SIGNATURE:
            return self.signatures.get(role)
        if tag_type is PlaceholderType.DATE:
            if field_name:
                explicit = self.fields.get(role, {}).get(field_name)
                if explicit:
                    return explicit
            return self.dates.get(role)
        if not field_name:
            return None
        value = self._field(role, field_name)
        if value is None and field_name == INITIALS_FIELD:
            value = self.initials.get(role)
        return value


# ─── Operator rewriting ────────────────────────────────────────────────────

def _fmt(n: float) -> str:
    s = f"{n:.4f}".rstrip("0").rstrip(".")
    return "0" if s in ("-0", "") else s


def _encode(value: str, as_hex: bool) -> str:
    if as_hex:
        return f"<{encode_hex_string(value)}>"
    return f"({escape_literal(value)})"


def _to_latin1(value: str) -> str:
    encoded = value.encode("latin-1", errors="replace").decode("latin-1")
    if encoded != value:
        logger.warning(f"[STAMP] Value {value!r} has characters outside latin-1, replaced with '?'")
    return encoded


def styled_value(value: str, tag_type: PlaceholderType, baseline_y: float,
                 as_hex: bool, shear: float, ink_color: str) -> str:
    shown = f"{_encode(value, as_hex)} Tj"
    if tag_type is PlaceholderType.SIGNATURE:
        # x' = x + shear·(y − baseline): glyphs lean right, the baseline stays put
        cm = f"1 0 {_fmt(shear)} 1 {_fmt(-shear * baseline_y)} 0 cm"
        return f"q {cm} {ink_color} rg {shown} Q"
    return f"q {ink_color} rg {shown} Q"


def rewrite_operator(
    op: ShowTextOp,
    resolve: Callable[[str], Optional[Tuple[ParsedTag, str]]],
    baseline_y: float,
    shear: float,
    ink_color: str,
) -> Tuple[Optional[str], int]:
    """Rebuild one show-text operator with its tags replaced.

    Returns (new operator source or None when nothing changed, replacements made).
    """
    text = op.text
    parts: List[str] = []
    cursor = 0
    replaced = 0
    for m in TAG_RE.finditer(text):
        resolved = resolve(m.group(0))
        if resolved is None:
            continue
        parsed, value = resolved
        if m.start() > cursor:
            parts.append(f"{_encode(text[cursor:m.start()], op.is_hex)} Tj")
        parts.append(styled_value(value, parsed.type, baseline_y, op.is_hex, shear, ink_color))
        cursor = m.end()
        replaced += 1
    if not replaced:
        return None, 0
    if cursor < len(text):
        parts.append(f"{_encode(text[cursor:], op.is_hex)} Tj")
    return " ".join(parts), replaced


def rewrite_stream(
    stream_text: str,
    resolve: Callable[[str], Optional[Tuple[ParsedTag, str]]],
    shear: float,
    ink_color: str,
) -> Tuple[str, int]:
    """Apply every tag replacement inside one decoded stream."""
    ops = find_show_text_ops(stream_text)
    geometry = StreamGeometry(stream_text)
    patches: List[Tuple[int, int, str]] = []
    total = 0
    for op in ops:
        if not TAG_RE.search(op.text):
            continue
        _, baseline_y = geometry.text_position(op.start)
        new_src, count = rewrite_operator(op, resolve, baseline_y, shear, ink_color)
        if new_src is not None:
            patches.append((op.start, op.end, new_src))
            total += count

    # Tags outside Tj/TJ (e.g. shown with ' or ") are swapped for the bare escaped value
    for occ in find_tag_occurrences(stream_text, ops):
        if occ.op is not None:
            continue
        resolved = resolve(occ.tag_text)
        if resolved is None:
            continue
        patches.append((occ.offset, occ.offset + len(occ.tag_text), escape_literal(resolved[1])))
        total += 1

    # Descending offsets keep earlier offsets valid
    for start, end, new_src in sorted(patches, key=lambda p: p[0], reverse=True):
        stream_text = stream_text[:start] + new_src + stream_text[end:]
    return stream_text, total


# ─── Document splicing ─────────────────────────────────────────────────────

def _make_resolver(placeholders: List[Placeholder], value_map: ValueMap):
    by_tag: Dict[str, ParsedTag] = {}
    for p in placeholders:
        by_tag.setdefault(p.original_tag, ParsedTag(p.type, p.role, p.field_name))
    missing: Set[str] = set()

    def resolve(tag: str) -> Optional[Tuple[ParsedTag, str]]:
        parsed = by_tag.get(tag)
        if parsed is None:
            parsed = parse_tag(tag)
            if parsed is None:
                return None
            by_tag[tag] = parsed
        value = value_map.lookup(parsed.type, parsed.role, parsed.field_name)
        if not value:
            missing.add(tag)
            return None
        return parsed, _to_latin1(value)

    return resolve, missing


def splice(pdf_bytes: bytes, patches: List[Tuple[int, int, bytes]]) -> bytes:
    """Replace byte ranges, applied in reverse offset order."""
    out = pdf_bytes
    for start, end, data in sorted(patches, key=lambda p: p[0], reverse=True):
        out = out[:start] + data + out[end:]
    return out


def _substitute_loose_tags(pdf_bytes: bytes, resolve) -> Tuple[bytes, int]:
    """Final pass: tags in raw bytes outside every decoded stream (dictionaries, strings)."""
    count = 0
    text = pdf_bytes.decode("latin-1")
    for tag in sorted({m.group(0) for m in TAG_RE.finditer(text)}):
        resolved = resolve(tag)
        if resolved is None:
            continue
        occurrences = text.count(tag)
        text = text.replace(tag, escape_literal(resolved[1]))
        count += occurrences
    return text.encode("latin-1"), count


def normalize_pdf(pdf_bytes: bytes) -> bytes:
    """Open and re-save once through PyMuPDF (no object renumbering)."""
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise PdfNormalizationError(f"Stamped document could not be opened: {e}") from e
    try:
        if doc.is_repaired:
            logger.info("[NORMALIZE] PyMuPDF repaired the spliced document")
        return doc.tobytes(garbage=1)
    except Exception as e:
        raise PdfNormalizationError(f"Stamped document could not be saved: {e}") from e
    finally:
        doc.close()


def stamp_pdf(
    pdf_bytes: bytes,
    placeholders: List[Placeholder],
    value_map: ValueMap,
    shear: Optional[float] = None,
    ink_color: Optional[str] = None,
    max_stream_bytes: Optional[int] = None,
) -> bytes:
    """Replace every tag that has a value and return normalized PDF bytes."""
    if shear is None:
        shear = settings.SIGNATURE_SHEAR
    if ink_color is None:
        ink_color = settings.INK_COLOR

    index = build_index(pdf_bytes, max_stream_bytes)
    resolve, missing = _make_resolver(placeholders, value_map)

    patches: List[Tuple[int, int, bytes]] = []
    replaced = 0
    for obj in index.stream_objects():
        decoded = index.decode_stream(obj.obj_id)
        if decoded is None or not TAG_RE.search(decoded.text):
            continue
        new_text, count = rewrite_stream(decoded.text, resolve, shear, ink_color)
        if not count:
            continue
        payload = new_text.encode("latin-1")
        if decoded.compressed:
            payload = zlib.compress(payload)
        patches.append((obj.stream_start, obj.stream_end, payload))
        if obj.length_span is not None:
            patches.append((obj.length_span[0], obj.length_span[1], str(len(payload)).encode("ascii")))
        replaced += count
        logger.info(f"[STAMP] Stream {obj.obj_id}: {count} tag(s) replaced")

    stamped = splice(pdf_bytes, patches)
    stamped, loose = _substitute_loose_tags(stamped, resolve)
    if loose:
        logger.info(f"[STAMP] Substituted {loose} loose tag occurrence(s) in raw bytes")

    for tag in sorted(missing):
        logger.warning(f"[STAMP] No value for {tag!r}, left unstamped")
    logger.info(f"[STAMP] Replaced {replaced + loose} tag occurrence(s) in total")

    return normalize_pdf(stamped)
