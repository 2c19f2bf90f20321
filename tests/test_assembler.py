"""
Tests for the document assembler: page loop, progress, deadlines and batches.
"""

import pytest
import logging
import sys
import tempfile
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pdf_reflow.utils.layout import TextFragment
from pdf_reflow.utils.io import ExtractedPage, ExtractionError


def frag(text, x, y, size=10.0):
    return TextFragment(text=text, x=x, y=y, scale_x=size, scale_y=size)


class FakeExtractor:
    """In-memory extraction service keyed by file name."""

    def __init__(self, documents):
        self.documents = documents
        self.closed = False
        self.requested = []

    def _pages(self, pdf_path):
        name = Path(pdf_path).name
        pages = self.documents[name]
        if isinstance(pages, Exception):
            raise pages
        return pages

    def page_count(self, pdf_path):
        return len(self._pages(pdf_path))

    def iter_pages(self, pdf_path, pages=None):
        all_pages = self._pages(pdf_path)
        numbers = pages if pages is not None else range(1, len(all_pages) + 1)
        try:
            for n in numbers:
                self.requested.append(n)
                yield ExtractedPage(n, 612.0, 792.0, all_pages[n - 1])
        finally:
            self.closed = True


@pytest.fixture
def three_pages():
    return [
        [frag("Hello", 72, 700), frag("World", 120, 700), frag("again", 72, 688)],
        [],
        [frag("Top", 72, 700), frag("Bottom", 72, 600), frag("   ", 72, 500)],
    ]


class TestProcessDocument:
    """Test single document processing."""

    def test_pages_and_paragraphs(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler, ConversionStatus

        assembler = DocumentAssembler(extractor=FakeExtractor({"report.pdf": three_pages}))
        document = assembler.process_document("report.pdf")

        assert document.task_id
        assert document.title == "report"
        assert document.status == ConversionStatus.COMPLETE
        assert [p.page_number for p in document.pages] == [1, 2, 3]

        first, empty, last = document.pages
        assert [p.text for p in first.paragraphs] == ["Hello World again"]
        assert len(empty.paragraphs) == 1
        assert empty.is_empty
        assert [p.text for p in last.paragraphs] == ["Top", "Bottom"]
        assert last.fragments_dropped == 1

    def test_metrics(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        assembler = DocumentAssembler(extractor=FakeExtractor({"report.pdf": three_pages}))
        metrics = assembler.process_document("report.pdf").metrics

        assert metrics.pages_processed == 3
        assert metrics.empty_pages == 1
        assert metrics.paragraphs_total == 3
        assert metrics.rows_total == 4
        assert metrics.fragments_used == 5
        assert metrics.fragments_dropped == 1
        assert metrics.mean_font_size == pytest.approx(10.0)
        assert metrics.processing_time_seconds >= 0.0

    def test_progress_callback(self, three_pages):
        """The callback reports page i of n after each page."""
        from pdf_reflow.utils.assembler import DocumentAssembler

        calls = []
        assembler = DocumentAssembler(
            extractor=FakeExtractor({"report.pdf": three_pages}),
            progress_callback=lambda done, total: calls.append((done, total))
        )
        assembler.process_document("report.pdf")

        assert calls == [(1, 3), (2, 3), (3, 3)]
        assert assembler.progress.percent_complete == 100.0

    def test_page_selection(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        extractor = FakeExtractor({"report.pdf": three_pages})
        document = DocumentAssembler(extractor=extractor).process_document(
            "report.pdf", pages=[3, 7]
        )

        assert extractor.requested == [3]
        assert [p.page_number for p in document.pages] == [3]

    def test_out_of_range_pages(self, three_pages, caplog):
        """Selecting only missing pages is reported, not silently empty."""
        from pdf_reflow.utils.assembler import DocumentAssembler

        extractor = FakeExtractor({"report.pdf": three_pages})
        with caplog.at_level(logging.WARNING):
            document = DocumentAssembler(extractor=extractor).process_document(
                "report.pdf", pages=[9]
            )

        assert document.pages == []
        assert extractor.requested == []
        assert "No pages of report.pdf" in caplog.text

    def test_max_pages(self, three_pages):
        from pdf_reflow.config import PipelineConfig
        from pdf_reflow.utils.assembler import DocumentAssembler

        config = PipelineConfig()
        config.extraction.max_pages = 2
        document = DocumentAssembler(
            extractor=FakeExtractor({"report.pdf": three_pages}),
            config=config
        ).process_document("report.pdf")

        assert len(document.pages) == 2

    def test_exact_mode(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        document = DocumentAssembler(
            extractor=FakeExtractor({"report.pdf": three_pages}),
            mode="exact"
        ).process_document("report.pdf")

        assert document.mode == "exact"
        assert [p.text for p in document.pages[0].paragraphs] == ["Hello World", "again"]

    def test_title_override(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        document = DocumentAssembler(
            extractor=FakeExtractor({"My File.pdf": three_pages})
        ).process_document("My File.pdf", title="Custom")

        assert document.title == "Custom"

    def test_extraction_error_propagates(self):
        """Extraction failures surface to the caller."""
        from pdf_reflow.utils.assembler import DocumentAssembler

        assembler = DocumentAssembler(
            extractor=FakeExtractor({"bad.pdf": ExtractionError("corrupt")})
        )

        with pytest.raises(ExtractionError):
            assembler.process_document("bad.pdf")

    def test_to_dict(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler
        from pdf_reflow.utils.io import save_json, load_json

        document = DocumentAssembler(
            extractor=FakeExtractor({"report.pdf": three_pages})
        ).process_document("report.pdf")

        with tempfile.TemporaryDirectory() as tmp_dir:
            loaded = load_json(save_json(document.to_dict(), Path(tmp_dir) / "doc.json"))

        assert loaded["task_id"] == document.task_id
        assert loaded["status"] == "complete"
        assert loaded["pages"][0]["paragraphs"][0]["text"] == "Hello World again"
        assert loaded["pages"][1]["paragraphs"] == [{"text": "", "lines": []}]
        assert loaded["metrics"]["pages_processed"] == 3


class TestConversionTask:
    """Test deadlines and cancellation."""

    def test_no_deadline(self):
        from pdf_reflow.utils.assembler import ConversionTask

        task = ConversionTask()

        assert task.deadline is None
        assert task.remaining() is None
        assert task.expired is False
        assert task.stop_reason() is None

    def test_deadline_with_fake_clock(self):
        from pdf_reflow.utils.assembler import ConversionTask, ConversionStatus

        now = [100.0]
        task = ConversionTask(timeout_seconds=30, clock=lambda: now[0])

        assert task.remaining() == 30
        now[0] = 129.0
        assert task.stop_reason() is None
        now[0] = 130.0
        assert task.expired is True
        assert task.remaining() == 0.0
        assert task.stop_reason() == ConversionStatus.TIMEOUT

    def test_cancel_wins_over_timeout(self):
        from pdf_reflow.utils.assembler import ConversionTask, ConversionStatus

        task = ConversionTask(timeout_seconds=1, clock=lambda: 1000.0)
        task.cancel()

        assert task.cancelled is True
        assert task.stop_reason() == ConversionStatus.CANCELLED

    def test_cancel_keeps_partial_pages(self, three_pages):
        """Cancelling after page 1 keeps page 1 and closes extraction."""
        from pdf_reflow.utils.assembler import DocumentAssembler, ConversionTask, ConversionStatus

        task = ConversionTask()
        extractor = FakeExtractor({"report.pdf": three_pages})
        assembler = DocumentAssembler(
            extractor=extractor,
            progress_callback=lambda done, total: task.cancel()
        )
        document = assembler.process_document("report.pdf", task=task)

        assert document.status == ConversionStatus.CANCELLED
        assert document.is_partial
        assert len(document.pages) == 1
        assert extractor.closed is True
        assert document.metrics.pages_processed == 1

    def test_timeout_keeps_partial_pages(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler, ConversionTask, ConversionStatus

        now = [0.0]

        def tick(done, total):
            now[0] += 6.0

        task = ConversionTask(timeout_seconds=10, clock=lambda: now[0])
        assembler = DocumentAssembler(
            extractor=FakeExtractor({"report.pdf": three_pages}),
            progress_callback=tick
        )
        document = assembler.process_document("report.pdf", task=task)

        assert document.status == ConversionStatus.TIMEOUT
        assert len(document.pages) == 2


class TestBatch:
    """Test multi-document processing."""

    def test_batch_continues_after_failure(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        extractor = FakeExtractor({
            "a.pdf": three_pages,
            "bad.pdf": ExtractionError("corrupt"),
            "c.pdf": three_pages[:1],
        })
        result = DocumentAssembler(extractor=extractor).process_batch(
            ["a.pdf", "bad.pdf", "c.pdf"]
        )

        assert [d.title for d in result.documents] == ["a", "c"]
        assert list(result.errors) == ["bad.pdf"]
        assert "corrupt" in result.errors["bad.pdf"]
        assert result.ok is False

    def test_batch_reports_empty_selection(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        result = DocumentAssembler(
            extractor=FakeExtractor({"a.pdf": three_pages})
        ).process_batch(["a.pdf"], pages=[9])

        assert result.documents == []
        assert result.errors == {"a.pdf": "no pages in the selected range"}
        assert result.ok is False

    def test_batch_reports_timeout_before_first_page(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler, ConversionStatus

        result = DocumentAssembler(
            extractor=FakeExtractor({"a.pdf": three_pages})
        ).process_batch(["a.pdf"], timeout_seconds=-1)

        assert result.documents == []
        assert result.errors == {"a.pdf": ConversionStatus.TIMEOUT}

    def test_batch_ok(self, three_pages):
        from pdf_reflow.utils.assembler import DocumentAssembler

        result = DocumentAssembler(
            extractor=FakeExtractor({"a.pdf": three_pages})
        ).process_batch(["a.pdf"])

        assert result.ok is True

    def test_merge(self, three_pages):
        """Merged documents renumber pages and keep their sources."""
        from pdf_reflow.utils.assembler import DocumentAssembler, Document

        assembler = DocumentAssembler(
            extractor=FakeExtractor({"a.pdf": three_pages, "b.pdf": three_pages[:1]})
        )
        docs = assembler.process_batch(["a.pdf", "b.pdf"]).documents
        merged = Document.merge(docs, title="combined")

        assert merged.title == "combined"
        assert [p.page_number for p in merged.pages] == [1, 2, 3, 4]
        assert merged.pages[3].source_file == "b.pdf"
        assert merged.source_files == ["a.pdf", "b.pdf"]
        assert merged.metrics.pages_processed == 4
        # Originals are untouched
        assert [p.page_number for p in docs[1].pages] == [1]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
