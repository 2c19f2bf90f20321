#!/usr/bin/env python
"""
Command-line interface for the PDF reflow pipeline.

Usage:
    pdf-reflow --input <pdf_or_folder> [...] --output <output_dir> [options]

Examples:
    # Convert a PDF to Word
    pdf-reflow --input report.pdf --output ./output

    # Convert a folder of PDFs into one merged document, all formats
    pdf-reflow --input ./scans --output ./output --merge --format all
"""

import sys
from pathlib import Path

# Add src directory to path for imports when running as script
_src_dir = Path(__file__).resolve().parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import argparse
import logging
import time
from typing import List, Optional

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("pdf_reflow")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    from pdf_reflow import __version__

    parser = argparse.ArgumentParser(
        prog="pdf-reflow",
        description="PDF Reflow - Rebuild paragraphs from PDF text and export to Word",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Convert a PDF to DOCX:
    pdf-reflow --input report.pdf --output ./output

  Keep the original line structure:
    pdf-reflow --input report.pdf --output ./output --mode exact

  Only specific pages, with a longer deadline:
    pdf-reflow --input report.pdf --output ./output --pages 1-5 --timeout 120
        """
    )

    # Required arguments
    parser.add_argument(
        "--input", "-i",
        required=True,
        nargs="+",
        help="Input PDF file(s) or folder(s) of PDFs"
    )

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated files"
    )

    # Optional arguments
    parser.add_argument(
        "--format", "-f",
        nargs="+",
        default=["docx"],
        choices=["json", "markdown", "docx", "all"],
        help="Output format(s) (default: docx)"
    )

    parser.add_argument(
        "--mode",
        choices=["flow", "exact"],
        default="flow",
        help="flow merges lines into paragraphs, exact keeps one paragraph per line (default: flow)"
    )

    parser.add_argument(
        "--row-tolerance",
        type=float,
        default=None,
        help="Baseline distance, in font sizes, still treated as the same line (default: 0.5)"
    )

    parser.add_argument(
        "--paragraph-gap",
        type=float,
        default=None,
        help="Line gap, in font sizes, that starts a new paragraph (default: 2.5)"
    )

    parser.add_argument(
        "--pages",
        type=str,
        default=None,
        help="Page range to process, e.g., '1-5' or '1,3,5' (default: all)"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-document deadline in seconds, 0 disables it (default: 30)"
    )

    parser.add_argument(
        "--merge",
        action="store_true",
        help="Combine all inputs into a single output document"
    )

    parser.add_argument(
        "--title",
        type=str,
        default=None,
        help="Output title (default: derived from the input file name)"
    )

    parser.add_argument(
        "--template",
        type=str,
        default=None,
        help="DOCX file whose styles and page setup the output starts from"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level and re-raise unexpected errors with a traceback"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def parse_page_range(page_str: str, max_pages: Optional[int] = None) -> List[int]:
    """
    Parse page range string to list of page numbers.

    Raises:
        ValueError: If the string is not a comma-separated list of pages/ranges
    """
    pages = []

    for part in page_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-", 1)
            start = max(int(start), 1)
            end = int(end)
            if max_pages is not None:
                end = min(end, max_pages)
            pages.extend(range(start, end + 1))
        else:
            page = int(part)
            if page >= 1 and (max_pages is None or page <= max_pages):
                pages.append(page)

    if not pages:
        raise ValueError(f"No pages selected by {page_str!r}")

    return sorted(set(pages))


def build_config(args):
    """Pipeline configuration from the environment plus command-line overrides."""
    from pdf_reflow.config import get_config, ReconstructionConfig

    config = get_config()

    if args.row_tolerance is not None or args.paragraph_gap is not None:
        current = config.reconstruction
        config.reconstruction = ReconstructionConfig(
            row_tolerance=(args.row_tolerance if args.row_tolerance is not None
                           else current.row_tolerance),
            paragraph_gap=(args.paragraph_gap if args.paragraph_gap is not None
                           else current.paragraph_gap),
            default_font_size=current.default_font_size,
        )

    if args.timeout is not None:
        config.extraction.timeout_seconds = args.timeout if args.timeout > 0 else None

    if args.template is not None:
        if not Path(args.template).is_file():
            raise ValueError(f"DOCX template not found: {args.template}")
        config.export.docx_template = args.template

    if args.debug:
        config.debug_mode = True

    return config


def _unique_name(base_name: str, used: set) -> str:
    name = base_name
    counter = 2
    while name in used:
        name = f"{base_name}_{counter}"
        counter += 1
    used.add(name)
    return name


def run_pipeline(args) -> int:
    """Run the PDF reflow pipeline."""
    from pdf_reflow.utils.io import collect_pdf_paths, ensure_dir, title_from_path
    from pdf_reflow.utils.assembler import DocumentAssembler, Document
    from pdf_reflow.utils.export import DocumentExporter, ExportError

    start_time = time.time()

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    if config.debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)

    output_dir = ensure_dir(args.output)

    pdf_paths = collect_pdf_paths(args.input)
    if not pdf_paths:
        logger.error("No PDF files to process")
        return EXIT_FAILURE

    pages = None
    if args.pages:
        try:
            pages = parse_page_range(args.pages)
        except ValueError as e:
            logger.error(f"Invalid --pages value: {e}")
            return EXIT_FAILURE
        logger.info(f"Processing pages: {pages}")

    def report_progress(done: int, total: int):
        logger.debug(f"Page {done} of {total} processed")

    assembler = DocumentAssembler(
        config=config,
        mode=args.mode,
        progress_callback=report_progress
    )

    batch = assembler.process_batch(pdf_paths, pages=pages)
    documents = batch.documents

    if args.merge and documents:
        title = args.title or title_from_path(pdf_paths[0])
        documents = [Document.merge(documents, title=title)]
    elif args.title and len(documents) == 1:
        documents[0].title = args.title
    elif args.title and len(documents) > 1:
        logger.warning(
            f"Ignoring --title for {len(documents)} separate outputs; add --merge to combine them"
        )

    used_names = set()
    for document in documents:
        base_name = _unique_name(document.title or "document", used_names)
        exporter = DocumentExporter(output_dir, base_name, config.export)
        try:
            export_results = exporter.export(document, args.format)
        except ExportError as e:
            logger.error(f"{e}. Try again with fewer pages (--pages) or fewer files.")
            return EXIT_FAILURE

        for fmt, path in export_results.items():
            logger.info(f"Exported {fmt}: {path}")

        if not args.quiet:
            print_summary(document, output_dir)

    elapsed = time.time() - start_time
    logger.info(f"Finished {len(pdf_paths)} input(s) in {elapsed:.2f}s")

    if batch.errors and not documents:
        return EXIT_FAILURE
    if not batch.ok:
        return EXIT_PARTIAL
    return EXIT_OK


def print_summary(document, output_dir: Path):
    metrics = document.metrics

    print("\n" + "=" * 60)
    print("PDF REFLOW COMPLETE" if not document.is_partial
          else f"PDF REFLOW STOPPED EARLY ({document.status})")
    print("=" * 60)
    print(f"Title: {document.title}")
    print(f"Source: {', '.join(document.source_files)}")
    print(f"Output: {output_dir}")
    print(f"Mode: {document.mode}")
    if metrics:
        print(f"Pages processed: {metrics.pages_processed} "
              f"(empty: {metrics.empty_pages})")
        print(f"Paragraphs: {metrics.paragraphs_total}")
        print(f"Lines: {metrics.rows_total}")
        print(f"Fragments: {metrics.fragments_used} used, "
              f"{metrics.fragments_dropped} dropped")
        print(f"Processing time: {metrics.processing_time_seconds:.2f}s")
    print("=" * 60)


def main():
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            raise
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
