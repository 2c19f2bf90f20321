"""
Document assembler module for PDF reflow.

Provides:
- Document data model (Document, Page)
- Page-by-page pipeline orchestration
- Deadline and cancellation handling with partial results
- Metrics calculation
"""

import time
import uuid
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Dict, Any, Union, Callable, Sequence
from pathlib import Path
import numpy as np

from ..config import PipelineConfig, JSON_SCHEMA_VERSION, DEFAULT_FONT_SIZE
from .layout import (
    LayoutReconstructor, Paragraph, ReconstructionMode
)
from .io import ExtractedPage, PdfTextExtractor, ProcessingProgress, select_pages, title_from_path

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ConversionStatus:
    """Outcome of a document conversion."""
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Page:
    """One reconstructed page. Always holds at least one paragraph."""
    page_number: int
    width: float
    height: float
    paragraphs: List[Paragraph] = field(default_factory=list)
    row_count: int = 0
    fragments_used: int = 0
    fragments_dropped: int = 0
    source_file: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.paragraphs if not p.is_empty)

    @property
    def is_empty(self) -> bool:
        return all(p.is_empty for p in self.paragraphs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_number": self.page_number,
            "width": self.width,
            "height": self.height,
            "source_file": self.source_file,
            "row_count": self.row_count,
            "fragments_used": self.fragments_used,
            "fragments_dropped": self.fragments_dropped,
            "paragraphs": [p.to_dict() for p in self.paragraphs],
        }


@dataclass
class DocumentMetrics:
    """Metrics about document processing."""
    pages_processed: int = 0
    empty_pages: int = 0
    paragraphs_total: int = 0
    rows_total: int = 0
    fragments_used: int = 0
    fragments_dropped: int = 0
    mean_font_size: float = 0.0
    processing_time_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages_processed": self.pages_processed,
            "empty_pages": self.empty_pages,
            "paragraphs": self.paragraphs_total,
            "rows": self.rows_total,
            "fragments": {
                "used": self.fragments_used,
                "dropped": self.fragments_dropped,
            },
            "mean_font_size": round(self.mean_font_size, 2),
            "processing_time_seconds": round(self.processing_time_seconds, 2),
        }


@dataclass
class Document:
    """Reconstructed document: one Page per processed source page."""
    task_id: str
    title: str
    source_files: List[str] = field(default_factory=list)
    pages: List[Page] = field(default_factory=list)
    mode: str = ReconstructionMode.FLOW.value
    status: str = ConversionStatus.COMPLETE
    metrics: Optional[DocumentMetrics] = None
    created_at: str = ""
    schema_version: str = JSON_SCHEMA_VERSION

    def __post_init__(self):
        if not self.task_id:
            self.task_id = str(uuid.uuid4())
        if not self.created_at:
            self.created_at = datetime.now().isoformat()

    @property
    def is_partial(self) -> bool:
        return self.status != ConversionStatus.COMPLETE

    @classmethod
    def merge(cls, documents: Sequence['Document'], title: str) -> 'Document':
        """Concatenate documents page by page, renumbering pages from 1."""
        pages = []
        for doc in documents:
            for page in doc.pages:
                pages.append(replace(page, page_number=len(pages) + 1))

        status = ConversionStatus.COMPLETE
        for doc in documents:
            if doc.is_partial:
                status = doc.status
                break

        modes = {doc.mode for doc in documents}
        merged = cls(
            task_id=str(uuid.uuid4()),
            title=title,
            source_files=[f for doc in documents for f in doc.source_files],
            pages=pages,
            mode=modes.pop() if len(modes) == 1 else ReconstructionMode.FLOW.value,
            status=status,
        )
        elapsed = sum(d.metrics.processing_time_seconds for d in documents if d.metrics)
        merged.metrics = calculate_metrics(merged, elapsed)
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "schema_version": self.schema_version,
            "title": self.title,
            "source_files": self.source_files,
            "created_at": self.created_at,
            "mode": self.mode,
            "status": self.status,
            "pages": [p.to_dict() for p in self.pages],
            "metrics": self.metrics.to_dict() if self.metrics else {},
        }


@dataclass
class BatchResult:
    """Documents converted in a batch, plus the inputs that failed."""
    documents: List[Document] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors and not any(d.is_partial for d in self.documents)


def calculate_metrics(
    doc: Document,
    processing_time: float,
    default_font_size: float = DEFAULT_FONT_SIZE
) -> DocumentMetrics:
    """Calculate document-wide metrics."""
    metrics = DocumentMetrics()
    metrics.processing_time_seconds = processing_time
    metrics.pages_processed = len(doc.pages)

    font_sizes = []
    for page in doc.pages:
        if page.is_empty:
            metrics.empty_pages += 1
        metrics.paragraphs_total += sum(1 for p in page.paragraphs if not p.is_empty)
        metrics.rows_total += page.row_count
        metrics.fragments_used += page.fragments_used
        metrics.fragments_dropped += page.fragments_dropped
        for paragraph in page.paragraphs:
            for row in paragraph.lines:
                font_sizes.extend(f.font_size(default_font_size) for f in row.fragments)

    if font_sizes:
        metrics.mean_font_size = float(np.mean(font_sizes))

    return metrics


# ============================================================================
# Cancellation
# ============================================================================

class ConversionTask:
    """
    Caller-owned deadline and cancel switch for one conversion.

    The assembler checks it between pages; a page already being extracted
    runs to completion.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._clock = clock
        self._cancelled = threading.Event()
        self.timeout_seconds = timeout_seconds
        self.deadline = clock() + timeout_seconds if timeout_seconds else None

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def stop_reason(self) -> Optional[str]:
        """Status to stop with, or None to keep going."""
        if self.cancelled:
            return ConversionStatus.CANCELLED
        if self.expired:
            return ConversionStatus.TIMEOUT
        return None


# ============================================================================
# Document Assembler
# ============================================================================

class DocumentAssembler:
    """
    Orchestrates the PDF reflow pipeline.

    Coordinates:
    - Text extraction (one page at a time)
    - Layout reconstruction
    - Progress reporting
    - Document assembly
    """

    def __init__(
        self,
        extractor: Optional[Any] = None,
        config: Optional[PipelineConfig] = None,
        mode: Union[str, ReconstructionMode] = ReconstructionMode.FLOW,
        progress_callback: Optional[ProgressCallback] = None
    ):
        self.config = config or PipelineConfig()
        self.mode = ReconstructionMode(mode)
        self.progress_callback = progress_callback
        self.progress = ProcessingProgress()

        self._extractor = extractor
        self._reconstructor = None

    @property
    def extractor(self):
        if self._extractor is None:
            self._extractor = PdfTextExtractor(self.config.extraction)
        return self._extractor

    @property
    def reconstructor(self) -> LayoutReconstructor:
        if self._reconstructor is None:
            self._reconstructor = LayoutReconstructor(
                config=self.config.reconstruction,
                mode=self.mode
            )
        return self._reconstructor

    def process_page(self, extracted: ExtractedPage, source_file: Optional[str] = None) -> Page:
        """
        Reconstruct a single extracted page.

        Args:
            extracted: Page fragments from the extractor
            source_file: Optional source path recorded on the page

        Returns:
            Page with at least one (possibly empty placeholder) paragraph
        """
        result = self.reconstructor.reconstruct_page(extracted.fragments)

        if result.fragments_dropped:
            logger.debug(
                f"Page {extracted.page_number}: dropped {result.fragments_dropped} "
                f"of {len(extracted.fragments)} fragments"
            )

        return Page(
            page_number=extracted.page_number,
            width=extracted.width,
            height=extracted.height,
            paragraphs=result.paragraphs,
            row_count=len(result.rows),
            fragments_used=result.fragments_used,
            fragments_dropped=result.fragments_dropped,
            source_file=source_file,
        )

    def process_document(
        self,
        pdf_path: Union[str, Path],
        pages: Optional[Sequence[int]] = None,
        task: Optional[ConversionTask] = None,
        title: Optional[str] = None
    ) -> Document:
        """
        Process a complete PDF.

        Args:
            pdf_path: Path to the PDF file
            pages: 1-indexed page numbers to process (None = all)
            task: Deadline/cancellation handle; a fresh one using the
                configured timeout is created when omitted
            title: Output title (defaults to one derived from the file name)

        Returns:
            Document with every processed page. If the task stops the run
            early, the pages finished so far are kept and ``status`` says why.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist
            ExtractionError: If the PDF cannot be read
        """
        start_time = time.time()
        pdf_path = Path(pdf_path)
        if task is None:
            task = ConversionTask(self.config.extraction.timeout_seconds)

        doc = Document(
            task_id=str(uuid.uuid4()),
            title=title or title_from_path(pdf_path),
            source_files=[str(pdf_path)],
            mode=self.mode.value,
        )

        total = self.extractor.page_count(pdf_path)
        selected = select_pages(total, pages, self.config.extraction.max_pages)
        self.progress = ProcessingProgress(total_pages=len(selected))
        if not selected:
            logger.warning(f"No pages of {pdf_path.name} in the selected range (document has {total})")
        logger.info(f"Processing {pdf_path.name}: {len(selected)} of {total} page(s)")

        page_iter = iter(self.extractor.iter_pages(pdf_path, selected))
        try:
            for index in range(1, len(selected) + 1):
                reason = task.stop_reason()
                if reason:
                    doc.status = reason
                    logger.warning(
                        f"Stopped {pdf_path.name} after {len(doc.pages)} of "
                        f"{len(selected)} page(s): {reason}"
                    )
                    break

                extracted = next(page_iter, None)
                if extracted is None:
                    break

                self.progress.update("reconstruct", extracted.page_number)
                doc.pages.append(self.process_page(extracted, source_file=str(pdf_path)))
                self.progress.complete_page()
                logger.info(f"Processed page {index} of {len(selected)}")

                if self.progress_callback:
                    self.progress_callback(index, len(selected))
        finally:
            close = getattr(page_iter, "close", None)
            if close is not None:
                close()

        doc.metrics = calculate_metrics(
            doc, time.time() - start_time, self.config.reconstruction.default_font_size
        )
        return doc

    def process_batch(
        self,
        pdf_paths: Sequence[Union[str, Path]],
        pages: Optional[Sequence[int]] = None,
        timeout_seconds: Optional[float] = None
    ) -> BatchResult:
        """
        Process several PDFs sequentially, one deadline per document.

        A failing input, or one that yields no pages, is recorded in
        ``errors`` and the rest continue.
        """
        if timeout_seconds is None:
            timeout_seconds = self.config.extraction.timeout_seconds

        result = BatchResult()
        for i, pdf_path in enumerate(pdf_paths, 1):
            logger.info(f"Document {i} of {len(pdf_paths)}: {pdf_path}")
            try:
                doc = self.process_document(
                    pdf_path,
                    pages=pages,
                    task=ConversionTask(timeout_seconds)
                )
            except (FileNotFoundError, RuntimeError) as e:
                logger.error(f"Failed to convert {pdf_path}: {e}")
                result.errors[str(pdf_path)] = str(e)
                continue
            if not doc.pages:
                reason = doc.status if doc.is_partial else "no pages in the selected range"
                logger.error(f"Nothing converted from {pdf_path}: {reason}")
                result.errors[str(pdf_path)] = reason
                continue
            result.documents.append(doc)
        return result
