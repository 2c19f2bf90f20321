"""
Configuration and constants for the PDF reflow pipeline.

This module provides:
- Layout reconstruction thresholds
- Text extraction settings
- DOCX export styling defaults
- Environment overrides
"""

import os
import math
import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger("pdf_reflow")


# ============================================================================
# Reconstruction Constants
# ============================================================================

# Baselines closer than font_size * ROW_TOLERANCE belong to the same row.
ROW_TOLERANCE = 0.5

# Rows further apart than row_height * PARAGRAPH_GAP start a new paragraph.
PARAGRAPH_GAP = 2.5

# Effective font size used when a fragment carries no usable scale.
DEFAULT_FONT_SIZE = 10.0

# Per-document ceiling for extraction + reconstruction, in seconds.
DEFAULT_TIMEOUT_SECONDS = 30.0

JSON_SCHEMA_VERSION = "1.0"


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class ReconstructionConfig:
    """Layout reconstruction thresholds."""
    row_tolerance: float = ROW_TOLERANCE
    paragraph_gap: float = PARAGRAPH_GAP
    default_font_size: float = DEFAULT_FONT_SIZE

    def __post_init__(self):
        for name in ("row_tolerance", "paragraph_gap"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite, non-negative number, got {value!r}")
        if not math.isfinite(self.default_font_size) or self.default_font_size <= 0:
            raise ValueError(
                f"default_font_size must be a finite, positive number, got {self.default_font_size!r}"
            )


@dataclass
class ExtractionConfig:
    """PDF text extraction configuration."""
    # pdfplumber word grouping tolerances (PDF units)
    x_tolerance: float = 3.0
    y_tolerance: float = 3.0
    keep_blank_chars: bool = False
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS
    max_pages: Optional[int] = None  # None = process all pages


@dataclass
class ExportConfig:
    """DOCX export configuration."""
    font_name: str = "Calibri"
    font_size_pt: float = 11.0
    space_after_pt: float = 6.0
    justify: bool = True
    docx_template: Optional[str] = None


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    reconstruction: ReconstructionConfig = field(default_factory=ReconstructionConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    debug_mode: bool = False


# ============================================================================
# Default Configuration Instance
# ============================================================================

def _float_from_env(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number")
        return None


def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    row_tolerance = _float_from_env("PDF_REFLOW_ROW_TOLERANCE")
    paragraph_gap = _float_from_env("PDF_REFLOW_PARAGRAPH_GAP")
    if row_tolerance is not None or paragraph_gap is not None:
        try:
            config.reconstruction = ReconstructionConfig(
                row_tolerance=row_tolerance if row_tolerance is not None else ROW_TOLERANCE,
                paragraph_gap=paragraph_gap if paragraph_gap is not None else PARAGRAPH_GAP,
            )
        except ValueError as e:
            logger.warning(f"Ignoring reconstruction overrides: {e}")

    timeout = _float_from_env("PDF_REFLOW_TIMEOUT")
    if timeout is not None:
        if timeout > 0:
            config.extraction.timeout_seconds = timeout
        else:
            # Non-positive disables the deadline
            config.extraction.timeout_seconds = None

    if os.environ.get("PDF_REFLOW_DEBUG", "").lower() == "true":
        config.debug_mode = True

    return config
