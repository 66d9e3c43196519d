from .pdf_renderer import PdfReportRenderer

__all__ = [
    "PdfReportRenderer",
]
