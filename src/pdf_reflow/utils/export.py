"""
Export module for PDF reflow.

Provides:
- DOCX export (using python-docx), one section per source page
- Markdown export
- JSON export
"""

import re
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from ..config import ExportConfig
from .layout import ReconstructionMode
from .io import save_json

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ["json", "markdown", "docx"]

# C0 controls other than tab, newline and carriage return are not allowed in XML
_XML_INVALID_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class ExportError(RuntimeError):
    """The output document could not be written."""


def xml_safe(text: str) -> str:
    """Replace control characters that XML cannot hold with spaces."""
    cleaned = _XML_INVALID_CHARS.sub(" ", text)
    if cleaned != text:
        cleaned = " ".join(cleaned.split())
    return cleaned


# ============================================================================
# Markdown Exporter
# ============================================================================

class MarkdownExporter:
    """Export document to Markdown format."""

    def __init__(self, include_page_breaks: bool = True, include_title: bool = True):
        self.include_page_breaks = include_page_breaks
        self.include_title = include_title

    def export(self, document: Any, output_path: Union[str, Path]) -> Path:
        """
        Export document to Markdown file.

        Args:
            document: Document object
            output_path: Output file path

        Returns:
            Path to the generated Markdown file
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        markdown = self.generate(document)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(markdown)

        logger.info(f"Exported Markdown to: {output_path}")
        return output_path

    def generate(self, document: Any) -> str:
        """Generate Markdown from document structure."""
        lines = []

        if self.include_title and document.title:
            lines.append(f"# {document.title}")
            lines.append("")

        for page in document.pages:
            if self.include_page_breaks and len(document.pages) > 1:
                lines.append("---")
                lines.append(f"*Page {page.page_number}*")
                lines.append("")

            for paragraph in page.paragraphs:
                if paragraph.is_empty:
                    continue
                lines.append(paragraph.text)
                lines.append("")

        return "\n".join(lines)


# ============================================================================
# DOCX Exporter
# ============================================================================

class DocxExporter:
    """Export document to DOCX format using python-docx."""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def export(self, document: Any, output_path: Union[str, Path]) -> Path:
        """
        Export document to DOCX file.

        Every source page becomes its own section starting on a new page, so
        the output stays page-aligned with the PDF even for pages without
        text.

        Args:
            document: Document object
            output_path: Output file path

        Returns:
            Path to the generated DOCX file

        Raises:
            ExportError: If the document cannot be built or saved
        """
        try:
            from docx import Document as DocxDocument
        except ImportError:
            raise ImportError(
                "python-docx is required for DOCX export. "
                "Install with: pip install python-docx"
            )

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        template = self.config.docx_template
        if template and not Path(template).is_file():
            raise ExportError(f"DOCX template not found: {template}")

        try:
            doc = DocxDocument(template) if template else DocxDocument()

            self._apply_defaults(doc, document)
            self._build_from_document(doc, document)
            doc.save(str(output_path))
        except (OSError, ValueError, KeyError, MemoryError) as e:
            raise ExportError(f"Failed to write DOCX {output_path}: {e}") from e

        logger.info(f"Exported DOCX to: {output_path}")
        return output_path

    def _apply_defaults(self, doc: Any, document: Any):
        from docx.shared import Pt

        doc.core_properties.title = xml_safe(document.title or "")

        normal = doc.styles['Normal']
        normal.font.name = self.config.font_name
        normal.font.size = Pt(self.config.font_size_pt)

    def _build_from_document(self, doc: Any, document: Any):
        """Build DOCX body, one section per page."""
        from docx.enum.section import WD_SECTION

        exact = document.mode == ReconstructionMode.EXACT.value

        for i, page in enumerate(document.pages):
            if i > 0:
                doc.add_section(WD_SECTION.NEW_PAGE)

            left_edge = min(
                (row.x for p in page.paragraphs for row in p.lines),
                default=0.0
            )
            for paragraph in page.paragraphs:
                self._add_paragraph(doc, paragraph, exact, left_edge)

    def _add_paragraph(self, doc: Any, paragraph: Any, exact: bool, left_edge: float):
        from docx.shared import Pt
        from docx.enum.text import WD_ALIGN_PARAGRAPH

        p = doc.add_paragraph()
        if paragraph.is_empty:
            return p

        run = p.add_run(xml_safe(paragraph.text))
        run.font.name = self.config.font_name
        run.font.size = Pt(self.config.font_size_pt)

        if exact:
            # Line-preserving: keep rows tight and indented as on the page
            p.paragraph_format.space_after = Pt(0)
            indent = paragraph.lines[0].x - left_edge
            if indent > 0:
                p.paragraph_format.left_indent = Pt(indent)
        else:
            p.paragraph_format.space_after = Pt(self.config.space_after_pt)
            if self.config.justify:
                p.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
        return p


# ============================================================================
# Multi-Format Exporter
# ============================================================================

class DocumentExporter:
    """Convenience class for exporting to multiple formats."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        base_name: str = "document",
        config: Optional[ExportConfig] = None
    ):
        self.output_dir = Path(output_dir)
        self.base_name = base_name

        self.markdown_exporter = MarkdownExporter()
        self.docx_exporter = DocxExporter(config)

    def export(self, document: Any, formats: Optional[List[str]] = None) -> Dict[str, Path]:
        """
        Export document to multiple formats.

        Args:
            document: Document object
            formats: List of formats ('json', 'markdown', 'docx', 'all')

        Returns:
            Dictionary mapping format to output path
        """
        if formats is None:
            formats = ["docx"]

        if "all" in formats:
            formats = list(SUPPORTED_FORMATS)

        unknown = [f for f in formats if f not in SUPPORTED_FORMATS]
        if unknown:
            raise ValueError(f"Unsupported export format(s): {', '.join(unknown)}")

        self.output_dir.mkdir(parents=True, exist_ok=True)

        results = {}

        if "json" in formats:
            path = self.output_dir / f"{self.base_name}.json"
            results["json"] = save_json(document.to_dict(), path)

        if "markdown" in formats:
            path = self.output_dir / f"{self.base_name}.md"
            results["markdown"] = self.markdown_exporter.export(document, path)

        if "docx" in formats:
            path = self.output_dir / f"{self.base_name}.docx"
            results["docx"] = self.docx_exporter.export(document, path)

        return results
