"""
PDF Reflow
==========

Converts PDFs into flowing, editable documents by rebuilding lines and
paragraphs from the positioned text fragments of each page.

Main components:
- Text extraction (pdfplumber)
- Layout reconstruction (rows and paragraphs)
- Document assembly with progress, deadlines and cancellation
- DOCX, Markdown and JSON export
"""

__version__ = "1.0.0"
