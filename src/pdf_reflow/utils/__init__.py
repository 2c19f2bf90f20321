"""
Utility modules for the PDF reflow pipeline.
"""

from .layout import (
    TextFragment, Row, Paragraph, ReconstructionMode, ReconstructionResult,
    LayoutReconstructor, reconstruct,
)
from .io import PdfTextExtractor, ExtractedPage, ExtractionError, save_json, load_json, ensure_dir
from .assembler import (
    DocumentAssembler, Document, Page, DocumentMetrics, ConversionTask,
    ConversionStatus, BatchResult,
)
from .export import MarkdownExporter, DocxExporter, DocumentExporter, ExportError

__all__ = [
    # Layout
    "TextFragment", "Row", "Paragraph", "ReconstructionMode", "ReconstructionResult",
    "LayoutReconstructor", "reconstruct",
    # IO
    "PdfTextExtractor", "ExtractedPage", "ExtractionError",
    "save_json", "load_json", "ensure_dir",
    # Assembly
    "DocumentAssembler", "Document", "Page", "DocumentMetrics", "ConversionTask",
    "ConversionStatus", "BatchResult",
    # Export
    "MarkdownExporter", "DocxExporter", "DocumentExporter", "ExportError",
]
