"""
I/O utilities for the PDF reflow pipeline.

Handles:
- PDF text extraction into positioned fragments (pdfplumber)
- JSON serialization
- Directory management and input discovery
- Progress tracking
"""

import re
import json
import logging
from pathlib import Path
from typing import List, Union, Optional, Any, Dict, Iterator, Sequence
from dataclasses import dataclass, field

import numpy as np
import pdfplumber

from ..config import ExtractionConfig
from .layout import TextFragment

logger = logging.getLogger(__name__)

logging.getLogger("pdfminer").setLevel(logging.ERROR)


class ExtractionError(RuntimeError):
    """A PDF could not be opened or a page could not be read."""


# ============================================================================
# PDF Text Extraction
# ============================================================================

@dataclass
class ExtractedPage:
    """Fragments of one PDF page, in PDF (y-up) coordinates."""
    page_number: int
    width: float
    height: float
    fragments: List[TextFragment] = field(default_factory=list)


def select_pages(
    total: int,
    pages: Optional[Sequence[int]] = None,
    max_pages: Optional[int] = None
) -> List[int]:
    """Resolve the 1-indexed page numbers to process, dropping out-of-range ones."""
    if pages is None:
        selected = list(range(1, total + 1))
    else:
        selected = [p for p in pages if 1 <= p <= total]
    if max_pages is not None:
        selected = selected[:max_pages]
    return selected


def words_to_fragments(words: List[Dict[str, Any]], page_height: float) -> List[TextFragment]:
    """
    Convert pdfplumber word dicts into fragments.

    pdfplumber measures ``top``/``bottom`` from the top edge of the page, so
    the bottom edge is flipped to get a y-up baseline.

    Args:
        words: Output of ``page.extract_words(extra_attrs=["size"])``
        page_height: Height of the page the words came from

    Returns:
        One fragment per word, in the order given
    """
    fragments = []
    for word in words:
        size = word.get("size") or 0.0
        fragments.append(TextFragment(
            text=word["text"],
            x=float(word["x0"]),
            y=float(page_height) - float(word["bottom"]),
            scale_x=float(size),
            scale_y=float(size),
        ))
    return fragments


class PdfTextExtractor:
    """
    Text-extraction service backed by pdfplumber.

    Create one explicitly and hand it to the assembler; tests substitute any
    object with the same ``page_count``/``iter_pages`` methods.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    def _open(self, pdf_path: Union[str, Path]):
        pdf_path = Path(pdf_path)
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")
        try:
            return pdfplumber.open(pdf_path)
        except Exception as e:
            raise ExtractionError(f"Failed to parse PDF {pdf_path}: {e}") from e

    def page_count(self, pdf_path: Union[str, Path]) -> int:
        """Get the number of pages in a PDF file."""
        with self._open(pdf_path) as pdf:
            try:
                return len(pdf.pages)
            except Exception as e:
                raise ExtractionError(f"Failed to read pages of {pdf_path}: {e}") from e

    def iter_pages(
        self,
        pdf_path: Union[str, Path],
        pages: Optional[Sequence[int]] = None
    ) -> Iterator[ExtractedPage]:
        """
        Yield the fragments of each requested page, one page at a time.

        Args:
            pdf_path: Path to the PDF file
            pages: 1-indexed page numbers (None = all, capped by max_pages)

        Raises:
            FileNotFoundError: If the PDF file doesn't exist
            ExtractionError: If the PDF or one of its pages cannot be read
        """
        with self._open(pdf_path) as pdf:
            try:
                total = len(pdf.pages)
            except Exception as e:
                raise ExtractionError(f"Failed to read pages of {pdf_path}: {e}") from e

            for page_number in self.select_pages(total, pages):
                page = pdf.pages[page_number - 1]
                try:
                    extracted = self.extract_page(page)
                except Exception as e:
                    raise ExtractionError(
                        f"Failed to read page {page_number} of {pdf_path}: {e}"
                    ) from e
                finally:
                    page.close()
                yield extracted

    def select_pages(self, total: int, pages: Optional[Sequence[int]] = None) -> List[int]:
        return select_pages(total, pages, self.config.max_pages)

    def extract_page(self, page) -> ExtractedPage:
        """Extract positioned words from a pdfplumber page."""
        words = page.extract_words(
            x_tolerance=self.config.x_tolerance,
            y_tolerance=self.config.y_tolerance,
            keep_blank_chars=self.config.keep_blank_chars,
            extra_attrs=["size"],
        )
        fragments = words_to_fragments(words, page.height)
        logger.debug(f"Page {page.page_number}: {len(fragments)} fragments")
        return ExtractedPage(
            page_number=page.page_number,
            width=float(page.width),
            height=float(page.height),
            fragments=fragments,
        )


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy scalars and paths."""

    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False
) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dicts and lists of plain values)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing
        ensure_ascii: If True, escape non-ASCII characters

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """Load data from a JSON file."""
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, 'r', encoding='utf-8') as f:
        return json.load(f)


# ============================================================================
# Paths and Inputs
# ============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def title_from_path(path: Union[str, Path]) -> str:
    """Document title from a file name: no .pdf suffix, whitespace as underscores."""
    name = Path(path).name
    name = re.sub(r"\.pdf$", "", name, flags=re.IGNORECASE)
    return re.sub(r"\s+", "_", name)


def detect_input_type(input_path: Union[str, Path]) -> str:
    """
    Detect the type of input file or directory.

    Returns:
        One of: 'pdf', 'pdf_folder', 'unknown'
    """
    input_path = Path(input_path)

    if input_path.is_dir():
        has_pdfs = any(f.suffix.lower() == '.pdf' for f in input_path.iterdir())
        return 'pdf_folder' if has_pdfs else 'unknown'

    if input_path.is_file() and input_path.suffix.lower() == '.pdf':
        return 'pdf'

    return 'unknown'


def collect_pdf_paths(inputs: Sequence[Union[str, Path]]) -> List[Path]:
    """Expand files and folders into an ordered list of PDF paths."""
    paths: List[Path] = []
    for item in inputs:
        item = Path(item)
        input_type = detect_input_type(item)
        if input_type == 'pdf':
            paths.append(item)
        elif input_type == 'pdf_folder':
            paths.extend(sorted(f for f in item.iterdir() if f.suffix.lower() == '.pdf'))
        else:
            logger.warning(f"Skipping unsupported input: {item}")
    return paths


# ============================================================================
# Progress Tracking
# ============================================================================

@dataclass
class ProcessingProgress:
    """Track progress of document processing."""
    total_pages: int = 0
    processed_pages: int = 0
    current_stage: str = ""
    current_page: int = 0

    @property
    def percent_complete(self) -> float:
        if self.total_pages == 0:
            return 0.0
        return (self.processed_pages / self.total_pages) * 100

    def update(self, stage: str, page: Optional[int] = None):
        self.current_stage = stage
        if page is not None:
            self.current_page = page

    def complete_page(self):
        self.processed_pages += 1
