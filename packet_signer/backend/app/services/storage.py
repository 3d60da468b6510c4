"""
Local storage for stamped documents.
All signed-PDF file output goes through this module.
"""

import os
import time
import logging
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


def signed_pdf_name(packet_id: str) -> str:
    """signed_<packet>_<epoch ms>.pdf"""
    return f"signed_{packet_id}_{int(time.time() * 1000)}.pdf"


def save_stamped_pdf(pdf_bytes: bytes, packet_id: str, directory: Optional[str] = None) -> str:
    """Write stamped bytes under the signed directory. Returns the file path."""
    directory = directory or settings.SIGNED_DIR
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, signed_pdf_name(packet_id))
    with open(path, "wb") as f:
        f.write(pdf_bytes)
    logger.info(f"Saved {len(pdf_bytes)} bytes to {path}")
    return path


def load_pdf(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()
