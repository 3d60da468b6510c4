"""
Object/stream indexer — a two-pass arena over the raw PDF bytes.

Pass 1 walks every ``N 0 obj`` header once and records, per object id, the
byte span of the object, its dictionary text and (for stream objects) the span
of the stream payload. Pass 2 classifies page objects and resolves their
``/Contents`` references by id lookup into that arena.

PDF syntax is ASCII-safe, so the whole buffer is also held as a latin-1 text
view: one character per byte, offsets shared between both views.

Simplifications (documented, not bugs):
- generation numbers are always assumed to be 0
- pages are ordered by ascending object id, a proxy for true page order that
  only holds when ids were assigned in page order
"""

import logging
import re
import zlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.core.config import settings
from app.services.pdf_errors import PdfReadError

logger = logging.getLogger(__name__)


_OBJ_HEADER_RE = re.compile(r"(?<![0-9])(\d+)\s+0\s+obj\b")
_STREAM_KW_RE = re.compile(r"(?<!end)stream(?:\r\n|\n|\r)")
_ENDSTREAM_RE = re.compile(r"(?:\r\n|\n|\r)?endstream")
_LENGTH_RE = re.compile(r"/Length\s+(\d+)(\s+\d+\s+R)?")

_CONTENTS_SINGLE_RE = re.compile(r"/Contents\s+(\d+)\s+0\s+R")
_CONTENTS_ARRAY_RE = re.compile(r"/Contents\s*\[([^\]]*)\]")
_REF_RE = re.compile(r"(\d+)\s+0\s+R")

_TYPE_PAGES_RE = re.compile(r"/Type\s*/Pages(?![A-Za-z0-9])")
_TYPE_PAGE_RE = re.compile(r"/Type\s*/Page(?![A-Za-z0-9])")


@dataclass
class PdfObject:
    """One ``N 0 obj … endobj`` entry in the arena."""
    obj_id: int
    start: int               # Offset of the "N 0 obj" header
    end: int                 # Offset just past "endobj" (or the stream end)
    dict_text: str           # Everything between "obj" and "stream"/"endobj"
    stream_start: int = -1   # First payload byte (-1 if not a stream)
    stream_end: int = -1     # One past the last payload byte
    length_span: Optional[tuple] = None  # (start, end) of a direct /Length value

    @property
    def has_stream(self) -> bool:
        return self.stream_start >= 0


@dataclass
class PageObject:
    """A page dictionary that can carry tags (it has resolvable /Contents)."""
    obj_id: int
    page_index: int
    content_ids: List[int]
    dict_text: str


@dataclass
class DecodedStream:
    obj_id: int
    text: str                # Decompressed payload as latin-1 text
    compressed: bool         # True if the payload inflated successfully


@dataclass
class PdfIndex:
    """Structural maps for one document. Rebuilt on every parse/stamp call."""
    raw: bytes
    text: str
    objects: Dict[int, PdfObject]
    pages: List[PageObject]
    stream_to_page: Dict[int, int]   # content stream id → page index
    page_index: Dict[int, int]       # page object id → page index
    max_stream_bytes: int = 500000
    _decoded: Dict[int, Optional[DecodedStream]] = field(default_factory=dict, repr=False)

    def get(self, obj_id: int) -> Optional[PdfObject]:
        return self.objects.get(obj_id)

    def stream_objects(self) -> List[PdfObject]:
        """All stream objects in document (byte offset) order."""
        return sorted(
            (obj for obj in self.objects.values() if obj.has_stream),
            key=lambda o: o.start,
        )

    def payload(self, obj: PdfObject) -> bytes:
        return self.raw[obj.stream_start:obj.stream_end]

    def decode_stream(self, obj_id: int) -> Optional[DecodedStream]:
        """Inflate a stream payload, falling back to the literal bytes.

        Returns None for non-stream objects and for payloads over the size
        guard, which are skipped entirely.
        """
        if obj_id in self._decoded:
            return self._decoded[obj_id]
        obj = self.objects.get(obj_id)
        decoded = None
        if obj is not None and obj.has_stream:
            payload = self.payload(obj)
            if len(payload) > self.max_stream_bytes:
                logger.info(
                    f"[INDEX] Skipping stream {obj_id}: {len(payload)} bytes "
                    f"exceeds guard of {self.max_stream_bytes}"
                )
            else:
                inflated = inflate(payload)
                if inflated is None:
                    logger.debug(f"[INDEX] Stream {obj_id} did not inflate, using literal bytes")
                    decoded = DecodedStream(obj_id, payload.decode("latin-1"), compressed=False)
                else:
                    decoded = DecodedStream(obj_id, inflated.decode("latin-1"), compressed=True)
        self._decoded[obj_id] = decoded
        return decoded


def inflate(payload: bytes) -> Optional[bytes]:
    """zlib-inflate a stream payload; trailing bytes after the zlib end are ignored."""
    if not payload:
        return None
    try:
        return zlib.decompressobj().decompress(payload)
    except zlib.error:
        return None


# ─── Pass 1: object arena ──────────────────────────────────────────────────

def _scan_objects(text: str) -> Dict[int, PdfObject]:
    objects: Dict[int, PdfObject] = {}
    pos = 0
    while True:
        m = _OBJ_HEADER_RE.search(text, pos)
        if m is None:
            break
        obj = _read_object(text, m)
        # Later definitions win (incremental updates append replacements)
        objects[obj.obj_id] = obj
        pos = max(obj.end, m.end())
    logger.debug(f"[INDEX] Indexed {len(objects)} objects")
    return objects


def _read_object(text: str, header: "re.Match") -> PdfObject:
    obj_id = int(header.group(1))
    body_start = header.end()
    endobj = text.find("endobj", body_start)
    stream_kw = _STREAM_KW_RE.search(text, body_start)

    if stream_kw is None or (endobj != -1 and stream_kw.start() > endobj):
        end = endobj + len("endobj") if endobj != -1 else len(text)
        dict_end = endobj if endobj != -1 else len(text)
        return PdfObject(obj_id, header.start(), end, text[body_start:dict_end])

    dict_text = text[body_start:stream_kw.start()]
    payload_start = stream_kw.end()
    payload_end = -1
    length_span = None

    length_m = _LENGTH_RE.search(dict_text)
    if length_m and not length_m.group(2):
        length_span = (body_start + length_m.start(1), body_start + length_m.end(1))
        candidate = payload_start + int(length_m.group(1))
        if _ENDSTREAM_RE.match(text, candidate):
            payload_end = candidate

    if payload_end < 0:
        # Indirect or wrong /Length: bound the payload by the next endstream
        es = text.find("endstream", payload_start)
        if es == -1:
            es = len(text)
        payload_end = es
        if text[payload_end - 2:payload_end] == "\r\n":
            payload_end -= 2
        elif payload_end > payload_start and text[payload_end - 1] in "\r\n":
            payload_end -= 1

    es = text.find("endstream", payload_end)
    after = es + len("endstream") if es != -1 else len(text)
    endobj = text.find("endobj", after)
    end = endobj + len("endobj") if endobj != -1 else after
    return PdfObject(
        obj_id, header.start(), end, dict_text,
        stream_start=payload_start, stream_end=payload_end,
        length_span=length_span,
    )


# ─── Pass 2: pages ─────────────────────────────────────────────────────────

def is_page_dictionary(dict_text: str) -> bool:
    """Heuristic page test: /Contents AND (/MediaBox, /CropBox, /Type /Page or /Parent)."""
    if "/Contents" not in dict_text:
        return False
    if _TYPE_PAGES_RE.search(dict_text):
        return False
    has_box = "/MediaBox" in dict_text or "/CropBox" in dict_text
    is_type_page = _TYPE_PAGE_RE.search(dict_text) is not None
    has_parent = "/Parent" in dict_text
    return has_box or is_type_page or has_parent


def content_stream_ids(dict_text: str, objects: Dict[int, PdfObject]) -> List[int]:
    """Resolve /Contents: a lone reference, an inline array, or a referenced array object."""
    ids: List[int] = []
    array_m = _CONTENTS_ARRAY_RE.search(dict_text)
    if array_m:
        ids.extend(int(r) for r in _REF_RE.findall(array_m.group(1)))
    else:
        single_m = _CONTENTS_SINGLE_RE.search(dict_text)
        if single_m:
            ref_id = int(single_m.group(1))
            target = objects.get(ref_id)
            if target is not None and not target.has_stream and "[" in target.dict_text:
                ids.extend(int(r) for r in _REF_RE.findall(target.dict_text))
            else:
                ids.append(ref_id)
    return [i for i in ids if i in objects and objects[i].has_stream]


def _collect_pages(objects: Dict[int, PdfObject]) -> List[PageObject]:
    pages: List[PageObject] = []
    for obj_id in sorted(objects):
        obj = objects[obj_id]
        if obj.has_stream or not is_page_dictionary(obj.dict_text):
            continue
        contents = content_stream_ids(obj.dict_text, objects)
        if not contents:
            logger.debug(f"[INDEX] Object {obj_id} looks like a page but has no resolvable /Contents")
            continue
        pages.append(PageObject(obj_id, len(pages), contents, obj.dict_text))
    return pages


def build_index(pdf_bytes: bytes, max_stream_bytes: Optional[int] = None) -> PdfIndex:
    """Index a raw PDF buffer. Raises PdfReadError only for non-PDF input."""
    if not pdf_bytes:
        raise PdfReadError("Empty document")
    if b"%PDF-" not in pdf_bytes[:1024]:
        raise PdfReadError("Missing %PDF header")

    text = pdf_bytes.decode("latin-1")
    objects = _scan_objects(text)
    pages = _collect_pages(objects)

    stream_to_page: Dict[int, int] = {}
    for page in pages:
        for content_id in page.content_ids:
            stream_to_page.setdefault(content_id, page.page_index)

    logger.info(
        f"[INDEX] {len(objects)} objects, {len(pages)} pages, "
        f"{len(stream_to_page)} page content streams"
    )
    return PdfIndex(
        raw=pdf_bytes,
        text=text,
        objects=objects,
        pages=pages,
        stream_to_page=stream_to_page,
        page_index={p.obj_id: p.page_index for p in pages},
        max_stream_bytes=max_stream_bytes if max_stream_bytes is not None else settings.MAX_STREAM_BYTES,
    )
