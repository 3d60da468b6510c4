"""
XObject resolution and placement.

Resource names such as ``/Fm1`` are only unique inside the dictionary that
owns them, so every page gets its own scoped name → object id map. Scoping is
attempted tier by tier:

    1. inline   /Resources << … /XObject << … >> >>   on the page
    2. indirect /Resources N 0 R   → that object's inline /XObject << … >>
    3. indirect /XObject M 0 R     → that object's name/ref entries
    4. global   every name → id pair seen anywhere in the document

The global map is a best-effort fallback for names the scoped map cannot
resolve; it never overrides a scoped hit.

Placements come from ``[q] a b c d e f cm /Name Do`` sequences in page content
streams: (e, f) is the origin nested tag offsets are added to.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.services.pdf_index import PageObject, PdfIndex

logger = logging.getLogger(__name__)


_NUM = r"([-+]?(?:\d+\.?\d*|\.\d+))"
_NAME = r"([^\s/<>\[\]()%{}]+)"

_RESOURCES_INLINE_RE = re.compile(r"/Resources\s*<<")
_RESOURCES_REF_RE = re.compile(r"/Resources\s+(\d+)\s+0\s+R")
_XOBJECT_INLINE_RE = re.compile(r"/XObject\s*<<(.*?)>>", re.S)
_XOBJECT_REF_RE = re.compile(r"/XObject\s+(\d+)\s+0\s+R")
_NAME_REF_RE = re.compile(r"/" + _NAME + r"\s+(\d+)\s+0\s+R")

_PLACEMENT_RE = re.compile(
    r"(?:(?<![A-Za-z])q\s+)?(?<![\d.])"
    + r"\s+".join([_NUM] * 6)
    + r"\s+cm\s*/" + _NAME + r"\s+Do(?![A-Za-z])"
)


@dataclass
class Placement:
    """Where a Form XObject is drawn: page index plus the cm translation."""
    obj_id: int
    page_index: int
    x: float
    y: float
    name: str


def balanced_dict(text: str, open_pos: int) -> Optional[str]:
    """Return the inner text of the ``<< … >>`` starting at open_pos (nesting aware)."""
    if text[open_pos:open_pos + 2] != "<<":
        return None
    depth = 0
    pos = open_pos
    length = len(text)
    while pos < length - 1:
        pair = text[pos:pos + 2]
        if pair == "<<":
            depth += 1
            pos += 2
            continue
        if pair == ">>":
            depth -= 1
            if depth == 0:
                return text[open_pos + 2:pos]
            pos += 2
            continue
        pos += 1
    return None


def _name_entries(text: str) -> Dict[str, int]:
    entries: Dict[str, int] = {}
    for name, obj_id in _NAME_REF_RE.findall(text):
        entries.setdefault(name, int(obj_id))
    return entries


# ─── Scoping tiers ─────────────────────────────────────────────────────────

def xobjects_in_resources(resources_text: str, index: PdfIndex) -> Dict[str, int]:
    """XObject entries of one Resources dictionary: inline first, then /XObject M 0 R."""
    inline = _XOBJECT_INLINE_RE.search(resources_text)
    if inline:
        return _name_entries(inline.group(1))
    return xobjects_from_indirect_xobject(resources_text, index)


def xobjects_from_inline_resources(page: PageObject, index: PdfIndex) -> Dict[str, int]:
    """Tier 1: the page carries its Resources dictionary inline."""
    m = _RESOURCES_INLINE_RE.search(page.dict_text)
    if not m:
        return {}
    resources = balanced_dict(page.dict_text, m.end() - 2)
    if resources is None:
        return {}
    return xobjects_in_resources(resources, index)


def xobjects_from_indirect_resources(page: PageObject, index: PdfIndex) -> Dict[str, int]:
    """Tier 2: /Resources N 0 R on the page."""
    m = _RESOURCES_REF_RE.search(page.dict_text)
    if not m:
        return {}
    resources = index.get(int(m.group(1)))
    if resources is None:
        return {}
    return xobjects_in_resources(resources.dict_text, index)


def xobjects_from_indirect_xobject(resources_text: str, index: PdfIndex) -> Dict[str, int]:
    """Tier 3: /XObject M 0 R inside a Resources dictionary."""
    m = _XOBJECT_REF_RE.search(resources_text)
    if not m:
        return {}
    target = index.get(int(m.group(1)))
    if target is None:
        return {}
    return _name_entries(target.dict_text)


def scoped_xobject_map(page: PageObject, index: PdfIndex) -> Dict[str, int]:
    """Tiers 1–3 in order; an empty result means the caller falls back to the global map."""
    entries = xobjects_from_inline_resources(page, index)
    if entries:
        return entries
    entries = xobjects_from_indirect_resources(page, index)
    if not entries:
        logger.debug(f"[XOBJ] No scoped XObject dictionary for page object {page.obj_id}")
    return entries


def global_xobject_map(index: PdfIndex) -> Dict[str, List[int]]:
    """Tier 4: every name → id pair found in any XObject dictionary of the document."""
    found: Dict[str, List[int]] = {}

    def _record(entries_text: str) -> None:
        for name, obj_id in _NAME_REF_RE.findall(entries_text):
            ids = found.setdefault(name, [])
            if int(obj_id) not in ids:
                ids.append(int(obj_id))

    for m in _XOBJECT_INLINE_RE.finditer(index.text):
        _record(m.group(1))
    for m in _XOBJECT_REF_RE.finditer(index.text):
        target = index.get(int(m.group(1)))
        if target is not None and not target.has_stream:
            _record(target.dict_text)

    logger.debug(f"[XOBJ] Global map holds {len(found)} XObject names")
    return found


# ─── Placement locator ─────────────────────────────────────────────────────

def find_do_operators(stream_text: str) -> List[tuple]:
    """All ``cm /Name Do`` pairs in a content stream as (name, x, y) tuples."""
    return [
        (m.group(7), float(m.group(5)), float(m.group(6)))
        for m in _PLACEMENT_RE.finditer(stream_text)
    ]


def locate_placements(index: PdfIndex) -> Dict[int, Placement]:
    """Map every drawn Form XObject id to its first placement origin."""
    global_map: Optional[Dict[str, List[int]]] = None
    placements: Dict[int, Placement] = {}

    for page in index.pages:
        scoped = scoped_xobject_map(page, index)
        for content_id in page.content_ids:
            decoded = index.decode_stream(content_id)
            if decoded is None:
                continue
            for name, x, y in find_do_operators(decoded.text):
                if name in scoped:
                    candidates = [scoped[name]]
                else:
                    if global_map is None:
                        global_map = global_xobject_map(index)
                    candidates = global_map.get(name, [])
                    if candidates:
                        logger.debug(
                            f"[XOBJ] /{name} on page {page.page_index} resolved via global map → {candidates}"
                        )
                for obj_id in candidates:
                    if obj_id not in placements:
                        placements[obj_id] = Placement(obj_id, page.page_index, x, y, name)

    logger.info(f"[XOBJ] Found {len(placements)} XObject placements")
    return placements
