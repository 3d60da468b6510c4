"""
Tag scanner — finds placeholder tags in every stream and resolves their
absolute page coordinates.

Tags are matched in the decoded text of show-text operators:

    (Employee: {{TitleA_es_:signer1}}) Tj
    [(Sign: [[SIGNA) -12 (TURE:manager]]) ] TJ      ← strings concatenated first

Position of an occurrence:
- local: last ``a b c d e f Tm`` inside the current text object gives (e, f);
  every ``tx ty Td``/``TD`` after it is summed on top
- if that lands in the near-origin noise band, the translation of the last
  ``cm`` before the tag is used instead (empirical fallback, tunable)
- page content streams use the local position directly; Form XObject streams
  add the XObject's placement origin
- anything still inside the noise band is dropped as unresolved
"""

import bisect
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.core.config import settings
from app.services.pdf_index import PdfIndex
from app.services.xobject_resolver import Placement, locate_placements

logger = logging.getLogger(__name__)


BRACE_TAG_PATTERN = r"\{\{\*?[^}]+_es_:[^}]*\}\}"
BRACKET_TAG_PATTERN = r"\[\[(?:SIGNATURE|DATE|TEXT):[^\]]+\]\]"
TAG_RE = re.compile(BRACE_TAG_PATTERN + "|" + BRACKET_TAG_PATTERN)

_NUM = r"([-+]?(?:\d+\.?\d*|\.\d+))"
_TM_RE = re.compile(r"(?<![\d.])" + r"\s+".join([_NUM] * 6) + r"\s+Tm(?![A-Za-z])")
_TD_RE = re.compile(r"(?<![\d.])" + _NUM + r"\s+" + _NUM + r"\s+T[dD](?![A-Za-z])")
_CM_RE = re.compile(r"(?<![\d.])" + r"\s+".join([_NUM] * 6) + r"\s+cm(?![A-Za-z])")
_BT_RE = re.compile(r"(?<![A-Za-z])BT(?![A-Za-z])")

_WHITESPACE = " \t\r\n\f\x00"
_DELIMITERS = "()<>[]{}/%"


# ─── Show-text operators ───────────────────────────────────────────────────

@dataclass
class TextString:
    """One string operand: its span in the stream and its decoded value."""
    start: int               # Offset of '(' or '<'
    end: int                 # One past ')' or '>'
    value: str               # Decoded, one character per byte
    is_hex: bool = False


@dataclass
class ShowTextOp:
    """A ``Tj`` or ``TJ`` operator with all of its string operands."""
    start: int               # Offset of the first operand ('(' / '<' / '[')
    end: int                 # One past the operator keyword
    operator: str            # "Tj" or "TJ"
    strings: List[TextString] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(s.value for s in self.strings)

    @property
    def is_hex(self) -> bool:
        return bool(self.strings) and self.strings[0].is_hex


def unescape_literal(raw: str) -> str:
    """Decode the bytes between ``(`` and ``)`` of a PDF literal string.

    Handles \\n \\r \\t \\b \\f \\( \\) \\\\, 1–3 digit octal escapes and
    backslash line continuations.
    """
    out = []
    i = 0
    n = len(raw)
    simple = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f", "(": "(", ")": ")", "\\": "\\"}
    while i < n:
        ch = raw[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        i += 1
        if i >= n:
            break
        esc = raw[i]
        if esc in simple:
            out.append(simple[esc])
            i += 1
        elif esc in "01234567":
            j = i
            while j < n and j < i + 3 and raw[j] in "01234567":
                j += 1
            out.append(chr(int(raw[i:j], 8) & 0xFF))
            i = j
        elif esc in "\r\n":
            # Line continuation
            i += 2 if raw[i:i + 2] == "\r\n" else 1
        else:
            out.append(esc)
            i += 1
    return "".join(out)


def escape_literal(value: str) -> str:
    """Encode text for use between ``(`` and ``)``: escape ( ) \\ and non-printables."""
    out = []
    for ch in value:
        code = ord(ch)
        if ch in "()\\":
            out.append("\\" + ch)
        elif code < 0x20 or code > 0x7E:
            out.append(f"\\{code & 0xFF:03o}")
        else:
            out.append(ch)
    return "".join(out)


def decode_hex_string(raw: str) -> Optional[str]:
    digits = "".join(raw.split())
    if len(digits) % 2:
        digits += "0"
    try:
        return bytes.fromhex(digits).decode("latin-1")
    except ValueError:
        return None


def encode_hex_string(value: str) -> str:
    return value.encode("latin-1", errors="replace").hex().upper()


def _read_literal(text: str, pos: int) -> Tuple[int, str]:
    """Parse a literal string starting at '('. Returns (end, raw inner text)."""
    length = len(text)
    i = pos + 1
    depth = 1
    while i < length and depth > 0:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        i += 1
    return i, text[pos + 1:i - 1]


def _skip_ws(text: str, pos: int) -> int:
    length = len(text)
    while pos < length and text[pos] in _WHITESPACE:
        pos += 1
    return pos


def _operator_at(text: str, pos: int, keyword: str) -> bool:
    end = pos + len(keyword)
    if text[pos:end] != keyword:
        return False
    return end >= len(text) or text[end] in _WHITESPACE or text[end] in _DELIMITERS


def _read_string(text: str, pos: int) -> Optional[TextString]:
    if text[pos] == "(":
        end, raw = _read_literal(text, pos)
        return TextString(pos, end, unescape_literal(raw))
    close = text.find(">", pos + 1)
    if close == -1:
        return None
    value = decode_hex_string(text[pos + 1:close])
    if value is None:
        return None
    return TextString(pos, close + 1, value, is_hex=True)


def find_show_text_ops(stream_text: str) -> List[ShowTextOp]:
    """Tokenize a content stream and return every Tj / TJ operator in order."""
    ops: List[ShowTextOp] = []
    pos = 0
    length = len(stream_text)

    while pos < length:
        pos = _skip_ws(stream_text, pos)
        if pos >= length:
            break
        ch = stream_text[pos]

        # Comments run to end of line
        if ch == "%":
            while pos < length and stream_text[pos] not in "\r\n":
                pos += 1
            continue

        # Single string followed by Tj
        if ch == "(" or (ch == "<" and stream_text[pos + 1:pos + 2] != "<"):
            string = _read_string(stream_text, pos)
            if string is None:
                pos += 1
                continue
            after = _skip_ws(stream_text, string.end)
            if _operator_at(stream_text, after, "Tj"):
                ops.append(ShowTextOp(pos, after + 2, "Tj", [string]))
                pos = after + 2
            else:
                pos = string.end
            continue

        # Array of strings and kerning numbers followed by TJ
        if ch == "[":
            array_start = pos
            strings: List[TextString] = []
            pos += 1
            while pos < length and stream_text[pos] != "]":
                pos = _skip_ws(stream_text, pos)
                if pos >= length or stream_text[pos] == "]":
                    break
                c = stream_text[pos]
                if c == "(" or (c == "<" and stream_text[pos + 1:pos + 2] != "<"):
                    string = _read_string(stream_text, pos)
                    if string is None:
                        pos += 1
                        continue
                    strings.append(string)
                    pos = string.end
                else:
                    # Kerning number (or anything else): skip the token
                    pos += 1
                    while pos < length and stream_text[pos] not in _WHITESPACE + "()<]":
                        pos += 1
            if pos < length:
                pos += 1
            after = _skip_ws(stream_text, pos)
            if strings and _operator_at(stream_text, after, "TJ"):
                ops.append(ShowTextOp(array_start, after + 2, "TJ", strings))
                pos = after + 2
            continue

        # Inline image data is binary: jump to EI
        if _operator_at(stream_text, pos, "ID"):
            ei = re.compile(r"\sEI(?![A-Za-z])").search(stream_text, pos + 2)
            pos = ei.end() if ei else length
            continue

        if stream_text[pos:pos + 2] in ("<<", ">>"):
            pos += 2
            continue

        # Any other token
        pos += 1
        while pos < length and stream_text[pos] not in _WHITESPACE and stream_text[pos] not in _DELIMITERS:
            pos += 1

    return ops


# ─── Positioning ───────────────────────────────────────────────────────────

class StreamGeometry:
    """Offsets of the positioning operators in one decoded stream."""

    def __init__(self, stream_text: str):
        self.bt_offsets = [m.start() for m in _BT_RE.finditer(stream_text)]
        self.tm = [(m.start(), float(m.group(5)), float(m.group(6))) for m in _TM_RE.finditer(stream_text)]
        self.td = [(m.start(), float(m.group(1)), float(m.group(2))) for m in _TD_RE.finditer(stream_text)]
        self.cm = [(m.start(), float(m.group(5)), float(m.group(6))) for m in _CM_RE.finditer(stream_text)]
        self._tm_offsets = [t[0] for t in self.tm]
        self._td_offsets = [t[0] for t in self.td]
        self._cm_offsets = [t[0] for t in self.cm]

    def text_position(self, offset: int) -> Tuple[float, float]:
        """Last Tm of the current text object plus the Td/TD moves after it."""
        bt_idx = bisect.bisect_left(self.bt_offsets, offset) - 1
        object_start = self.bt_offsets[bt_idx] if bt_idx >= 0 else 0

        x = y = 0.0
        moves_from = object_start
        tm_idx = bisect.bisect_left(self._tm_offsets, offset) - 1
        if tm_idx >= 0 and self._tm_offsets[tm_idx] >= object_start:
            _, x, y = self.tm[tm_idx]
            moves_from = self._tm_offsets[tm_idx]

        lo = bisect.bisect_left(self._td_offsets, moves_from)
        hi = bisect.bisect_left(self._td_offsets, offset)
        for _, dx, dy in self.td[lo:hi]:
            x += dx
            y += dy
        return x, y

    def last_cm_translation(self, offset: int) -> Optional[Tuple[float, float]]:
        idx = bisect.bisect_left(self._cm_offsets, offset) - 1
        if idx < 0:
            return None
        _, e, f = self.cm[idx]
        return e, f

    def local_position(self, offset: int, threshold: float) -> Tuple[float, float]:
        """text_position, with the enclosing cm translation used when it is near zero."""
        x, y = self.text_position(offset)
        if is_near_origin(x, y, threshold):
            cm = self.last_cm_translation(offset)
            if cm is not None:
                return cm
        return x, y


def is_near_origin(x: float, y: float, threshold: float) -> bool:
    return abs(x) < threshold and abs(y) < threshold


# ─── Scanning ──────────────────────────────────────────────────────────────

@dataclass
class TagOccurrence:
    """A tag found in one decoded stream, before any coordinate resolution."""
    tag_text: str
    offset: int                         # Operator start, or the raw match offset
    op: Optional[ShowTextOp] = None     # None when found outside a show-text operator


@dataclass
class TagLocation:
    """A fully resolved tag occurrence."""
    tag_text: str
    page_index: int
    x: float
    y: float
    stream_id: int
    local_x: float = 0.0
    local_y: float = 0.0


def find_tag_occurrences(stream_text: str, ops: Optional[List[ShowTextOp]] = None) -> List[TagOccurrence]:
    """Every tag in a decoded stream, in offset order, repeats included."""
    if ops is None:
        ops = find_show_text_ops(stream_text)
    found: List[TagOccurrence] = []
    for op in ops:
        for m in TAG_RE.finditer(op.text):
            found.append(TagOccurrence(m.group(0), op.start, op))

    # Tag text outside any recognised show-text operator
    spans = [(op.start, op.end) for op in ops]
    starts = [s for s, _ in spans]
    for m in TAG_RE.finditer(stream_text):
        idx = bisect.bisect_right(starts, m.start()) - 1
        if idx >= 0 and m.start() < spans[idx][1]:
            continue
        found.append(TagOccurrence(m.group(0), m.start()))

    found.sort(key=lambda t: t.offset)
    return found


def scan_tag_locations(
    index: PdfIndex,
    threshold: Optional[float] = None,
    placements: Optional[Dict[int, Placement]] = None,
) -> List[TagLocation]:
    """Resolve every tag occurrence in the document to absolute coordinates."""
    if threshold is None:
        threshold = settings.POSITION_NOISE_THRESHOLD
    if placements is None:
        placements = locate_placements(index)

    locations: List[TagLocation] = []
    dropped = 0

    for obj in index.stream_objects():
        decoded = index.decode_stream(obj.obj_id)
        if decoded is None or not TAG_RE.search(decoded.text):
            continue

        occurrences = find_tag_occurrences(decoded.text)
        geometry = StreamGeometry(decoded.text)

        if obj.obj_id in index.stream_to_page:
            page_index = index.stream_to_page[obj.obj_id]
            origin_x = origin_y = 0.0
        else:
            placement = placements.get(obj.obj_id)
            if placement is not None:
                page_index = placement.page_index
                origin_x, origin_y = placement.x, placement.y
            else:
                page_index = 0
                origin_x = origin_y = 0.0
                logger.debug(f"[SCAN] Stream {obj.obj_id} has tags but no page or placement")

        for occ in occurrences:
            local_x, local_y = geometry.local_position(occ.offset, threshold)
            x = origin_x + local_x
            y = origin_y + local_y
            if is_near_origin(x, y, threshold):
                dropped += 1
                logger.info(f"[SCAN] Dropping {occ.tag_text!r} in stream {obj.obj_id}: position unresolved ({x:.1f}, {y:.1f})")
                continue
            locations.append(TagLocation(
                tag_text=occ.tag_text,
                page_index=page_index,
                x=x,
                y=y,
                stream_id=obj.obj_id,
                local_x=local_x,
                local_y=local_y,
            ))

    logger.info(f"[SCAN] Resolved {len(locations)} tag occurrences ({dropped} dropped)")
    return locations
