"""
Layout reconstruction module for PDF reflow.

Provides:
- Positioned text fragment model
- Row clustering (fragments sharing a baseline)
- Paragraph clustering (rows separated by ordinary line spacing)
- Flow and exact (line-preserving) reconstruction modes

The reconstructor is a pure function of one page's fragments and the
configured thresholds. It holds no state between calls and can be run on
independent pages concurrently.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any, Iterable, Sequence
from enum import Enum
import numpy as np

from ..config import ReconstructionConfig, DEFAULT_FONT_SIZE

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes and Enums
# ============================================================================

class ReconstructionMode(Enum):
    """How rows are grouped into output paragraphs."""
    FLOW = "flow"
    EXACT = "exact"


@dataclass(frozen=True)
class TextFragment:
    """One positioned run of text from the extraction layer."""
    text: str
    x: float
    y: float
    scale_x: float = 0.0
    scale_y: float = 0.0

    @classmethod
    def from_transform(cls, text: str, transform: Sequence[float]) -> 'TextFragment':
        """Build a fragment from a 6-element (a, b, c, d, e, f) text matrix."""
        a, _b, _c, d, e, f = transform
        return cls(text=text, x=e, y=f, scale_x=a, scale_y=d)

    def font_size(self, default: float = DEFAULT_FONT_SIZE) -> float:
        """Effective font size: the larger scale magnitude, or *default*."""
        size = max(abs(self.scale_x), abs(self.scale_y))
        return size if size > 0 else default

    def is_usable(self, default_font_size: float = DEFAULT_FONT_SIZE) -> bool:
        if not self.text or not self.text.strip():
            return False
        if not np.all(np.isfinite([self.x, self.y, self.scale_x, self.scale_y])):
            return False
        return self.font_size(default_font_size) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "scale_x": self.scale_x,
            "scale_y": self.scale_y,
        }


@dataclass
class Row:
    """Fragments judged to lie on the same visual line."""
    fragments: List[TextFragment]
    y: float
    height: float

    @property
    def text(self) -> str:
        return " ".join(f.text for f in self.fragments)

    @property
    def x(self) -> float:
        return self.fragments[0].x if self.fragments else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "y": self.y,
            "height": self.height,
            "text": self.text,
            "fragments": [f.to_dict() for f in self.fragments],
        }


@dataclass
class Paragraph:
    """A block of consecutive rows. A paragraph without lines is a placeholder."""
    lines: List[Row] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(row.text for row in self.lines).strip()

    @property
    def is_empty(self) -> bool:
        return self.text == ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "lines": [row.to_dict() for row in self.lines],
        }


@dataclass
class ReconstructionResult:
    """Paragraphs for one page plus the bookkeeping callers report on."""
    paragraphs: List[Paragraph]
    rows: List[Row]
    fragments_used: int = 0
    fragments_dropped: int = 0


# ============================================================================
# Layout Reconstructor
# ============================================================================

class LayoutReconstructor:
    """
    Rebuilds rows and paragraphs from one page of positioned fragments.

    Page coordinates are expected with y increasing upward, so the top of the
    page has the largest y.
    """

    def __init__(
        self,
        config: Optional[ReconstructionConfig] = None,
        mode: ReconstructionMode = ReconstructionMode.FLOW
    ):
        self.config = config or ReconstructionConfig()
        self.mode = ReconstructionMode(mode)

    def reconstruct(self, fragments: Iterable[TextFragment]) -> List[Paragraph]:
        """
        Convert a page's fragments into paragraphs in reading order.

        Args:
            fragments: Fragments of a single page, in any order

        Returns:
            At least one paragraph; a single empty placeholder when the page
            has no usable text
        """
        return self.reconstruct_page(fragments).paragraphs

    def reconstruct_page(self, fragments: Iterable[TextFragment]) -> ReconstructionResult:
        """Like reconstruct(), but also returns rows and fragment counts."""
        usable, dropped = self.filter_fragments(fragments)
        if dropped:
            logger.debug(f"Dropped {dropped} unusable fragment(s)")

        rows = self.cluster_rows(usable)

        if self.mode == ReconstructionMode.EXACT:
            paragraphs = [Paragraph(lines=[row]) for row in rows]
        else:
            paragraphs = self.cluster_paragraphs(rows)

        if not paragraphs:
            paragraphs = [Paragraph()]

        return ReconstructionResult(
            paragraphs=paragraphs,
            rows=rows,
            fragments_used=len(usable),
            fragments_dropped=dropped,
        )

    def filter_fragments(
        self,
        fragments: Iterable[TextFragment]
    ) -> Tuple[List[TextFragment], int]:
        """Split off blank fragments and fragments with non-finite geometry."""
        usable = []
        dropped = 0
        for fragment in fragments:
            if fragment.is_usable(self.config.default_font_size):
                usable.append(fragment)
            else:
                dropped += 1
        return usable, dropped

    def cluster_rows(self, fragments: Sequence[TextFragment]) -> List[Row]:
        """Group fragments into rows, top of page first."""
        default_size = self.config.default_font_size
        tolerance = self.config.row_tolerance

        # Top to bottom, then left to right; sorted() is stable for exact ties
        ordered = sorted(fragments, key=lambda f: (-f.y, f.x))

        rows: List[Row] = []
        current: List[TextFragment] = []
        last_y: Optional[float] = None

        for fragment in ordered:
            font_size = fragment.font_size(default_size)
            if last_y is not None and abs(last_y - fragment.y) > font_size * tolerance:
                rows.append(self._close_row(current))
                current = []
            current.append(fragment)
            last_y = fragment.y

        if current:
            rows.append(self._close_row(current))

        return rows

    def _close_row(self, fragments: List[TextFragment]) -> Row:
        first = fragments[0]
        return Row(
            fragments=sorted(fragments, key=lambda f: f.x),
            y=first.y,
            height=first.font_size(self.config.default_font_size),
        )

    def cluster_paragraphs(self, rows: Sequence[Row]) -> List[Paragraph]:
        """Group consecutive rows into paragraphs at large vertical gaps."""
        gap = self.config.paragraph_gap

        candidates: List[Paragraph] = []
        current: List[Row] = []
        last_row_y: Optional[float] = None
        last_row_height = 0.0

        for row in rows:
            if last_row_y is not None and abs(last_row_y - row.y) > last_row_height * gap:
                if current:
                    candidates.append(Paragraph(lines=current))
                current = []
            current.append(row)
            last_row_y = row.y
            last_row_height = row.height

        if current:
            candidates.append(Paragraph(lines=current))

        paragraphs = [p for p in candidates if not p.is_empty]
        if not paragraphs and candidates:
            # Keep the page's only candidate rather than emitting nothing
            paragraphs = candidates[:1]
        return paragraphs


def reconstruct(
    fragments: Iterable[TextFragment],
    config: Optional[ReconstructionConfig] = None,
    mode: ReconstructionMode = ReconstructionMode.FLOW
) -> List[Paragraph]:
    """Reconstruct paragraphs for one page with the given thresholds."""
    return LayoutReconstructor(config=config, mode=mode).reconstruct(fragments)
