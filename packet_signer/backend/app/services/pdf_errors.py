"""
Terminal errors raised by the placeholder engine.

Everything tag-related degrades locally (fewer placeholders, tags left
unstamped). Only an unreadable input or a spliced document that PyMuPDF
cannot re-save aborts a call.
"""


class PdfEngineError(Exception):
    """Base class for fatal engine errors."""


class PdfReadError(PdfEngineError):
    """The input could not be read as a PDF at all."""


class PdfNormalizationError(PdfEngineError):
    """The final PyMuPDF re-save could not parse the spliced bytes."""
