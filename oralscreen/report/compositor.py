"""
PDF report compositor.

Lays out an A4 screening report with PyMuPDF:

    header band     title on a colored band
    patient box     name, email, generation date
    body panel      three image cells with slot pills, then the color legend
    recommendations one entry per label with text, flowing onto extra pages

The compositor only reads: it takes a submission snapshot, the
recommendations map and an image fetch function, and returns PDF bytes.
"""

import logging
from datetime import date
from typing import Callable, List, Mapping, Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image

from oralscreen.config import config
from oralscreen.core.constants import PROBLEM_COLORS, SLOT_LABELS
from oralscreen.core.errors import ImageDecodeError, PersistenceError, RenderError
from oralscreen.core.image import decode_image, encode_image, get_label_color, hex_to_unit_rgb
from oralscreen.core.text import is_blank, normalize_label, wrap_text
from oralscreen.submissions.models import Submission

logger = logging.getLogger("oralscreen.report")

# Fonts (PyMuPDF base-14 aliases)
FONT = "helv"
FONT_BOLD = "hebo"

# Layout, in points
HEADER_HEIGHT = 120
DETAILS_Y = 140
DETAILS_HEIGHT = 50
PANEL_HEIGHT = 340
CELL_WIDTH = 160
CELL_HEIGHT = 140
CELL_SPACING = 20
CELL_INSET = 4
PILL_WIDTH = 90
PILL_HEIGHT = 22
LEGEND_COLUMNS = 3
LEGEND_ROW_HEIGHT = 25
SWATCH_SIZE = 16
MARGIN = 40
REC_TEXT_X = 200
REC_LINE_HEIGHT = 15
REC_ENTRY_MIN_HEIGHT = 30
BOTTOM_MARGIN = 40

# Colors
HEADER_COLOR = "#A084E8"
DETAILS_BORDER = "#E5E7EB"
PANEL_FILL = "#F3F0FF"
PANEL_BORDER = "#E0E7FF"
CELL_BORDER = "#D1D5DB"
PILL_COLOR = "#EF4444"
PLACEHOLDER_COLOR = "#6B7280"
TEXT_COLOR = "#222222"
SECTION_COLOR = "#1E40AF"
WHITE = "#FFFFFF"

# Largest edge of an embedded cell image, in pixels
CELL_IMAGE_MAX_PX = 640

FetchImage = Callable[[str], bytes]


def legend_entries() -> List[Tuple[str, str]]:
    """The fixed (label, color) legend, independent of which labels are used."""
    return list(PROBLEM_COLORS.items())


def select_cell_images(submission: Submission) -> List[Tuple[str, str, str]]:
    """(slot, display label, image url) per cell, annotated image preferred."""
    return [
        (name, SLOT_LABELS[name], slot.display_image_url)
        for name, slot in submission.slots
    ]


def report_entries(recommendations: Mapping[str, str]) -> List[Tuple[str, str]]:
    """Recommendations with text, in map order; blank entries dropped."""
    return [
        (normalize_label(label), text.strip())
        for label, text in recommendations.items()
        if not is_blank(text)
    ]


# -----------------------------------------------------------------------------
# Drawing helpers
# -----------------------------------------------------------------------------


def _radius(rect: fitz.Rect, points: float) -> float:
    """Convert a corner radius in points to PyMuPDF's relative radius."""
    side = min(rect.width, rect.height)
    if side <= 0:
        return 0
    return min(0.5, points / side)


def _text(
    page: fitz.Page,
    x: float,
    top: float,
    text: str,
    size: float,
    bold: bool = False,
    color: str = TEXT_COLOR,
) -> None:
    """Insert text whose top edge sits at `top` (insert_text takes a baseline)."""
    page.insert_text(
        (x, top + size * 0.8),
        text,
        fontname=FONT_BOLD if bold else FONT,
        fontsize=size,
        color=hex_to_unit_rgb(color),
    )


def _centered_text(
    page: fitz.Page,
    left: float,
    width: float,
    top: float,
    text: str,
    size: float,
    bold: bool = False,
    color: str = TEXT_COLOR,
) -> None:
    font = FONT_BOLD if bold else FONT
    text_width = fitz.get_text_length(text, fontname=font, fontsize=size)
    _text(page, left + (width - text_width) / 2, top, text, size, bold=bold, color=color)


def _load_cell_image(fetch_image: FetchImage, url: str) -> bytes:
    """Fetch and normalize one cell image to a small JPEG.

    Raises:
        RenderError: If the image cannot be fetched or decoded
    """
    try:
        image = decode_image(fetch_image(url))
    except (PersistenceError, ImageDecodeError) as e:
        raise RenderError(f"Cannot render image {url}: {e}") from e

    image.thumbnail((CELL_IMAGE_MAX_PX, CELL_IMAGE_MAX_PX), Image.Resampling.LANCZOS)
    return encode_image(image, image_format="JPEG", quality=config.jpeg_quality)


# -----------------------------------------------------------------------------
# Sections
# -----------------------------------------------------------------------------


def _draw_header(page: fitz.Page, title: str) -> None:
    width = page.rect.width
    page.draw_rect(
        fitz.Rect(0, 0, width, HEADER_HEIGHT),
        color=None,
        fill=hex_to_unit_rgb(HEADER_COLOR),
    )
    _centered_text(page, 0, width, 25, title, 30, bold=True, color=WHITE)
    _centered_text(page, 0, width, 65, "Report", 30, bold=True, color=WHITE)


def _draw_patient_details(page: fitz.Page, submission: Submission, generated_on: date) -> None:
    width = page.rect.width
    box = fitz.Rect(MARGIN, DETAILS_Y, width - MARGIN, DETAILS_Y + DETAILS_HEIGHT)
    page.draw_rect(
        box,
        color=hex_to_unit_rgb(DETAILS_BORDER),
        fill=hex_to_unit_rgb(WHITE),
        radius=_radius(box, 8),
    )
    top = DETAILS_Y + 18
    _text(page, 60, top, f"Name: {submission.patient_name}", 13, bold=True)
    _text(page, 240, top, f"Email: {submission.patient_email}", 13, bold=True)
    _text(page, 450, top, f"Date: {generated_on.strftime('%d/%m/%Y')}", 13, bold=True)


def _draw_image_cells(
    page: fitz.Page,
    submission: Submission,
    fetch_image: FetchImage,
    top: float,
) -> None:
    cells = select_cell_images(submission)
    total_width = len(cells) * CELL_WIDTH + (len(cells) - 1) * CELL_SPACING
    x = (page.rect.width - total_width) / 2

    for _, label, url in cells:
        cell = fitz.Rect(x, top, x + CELL_WIDTH, top + CELL_HEIGHT)
        page.draw_rect(
            cell,
            color=hex_to_unit_rgb(CELL_BORDER),
            width=2,
            radius=_radius(cell, 8),
        )

        try:
            stream = _load_cell_image(fetch_image, url)
            inner = fitz.Rect(cell.x0 + CELL_INSET, cell.y0 + CELL_INSET, cell.x1 - CELL_INSET, cell.y1 - CELL_INSET)
            page.insert_image(inner, stream=stream)
        except RenderError as e:
            logger.warning(f"{label}: {e}")
            _centered_text(
                page, cell.x0, CELL_WIDTH, cell.y0 + CELL_HEIGHT / 2 - 6,
                "Image not available", 12, color=PLACEHOLDER_COLOR,
            )

        pill_top = cell.y1 + 15
        pill_left = x + (CELL_WIDTH - PILL_WIDTH) / 2
        pill = fitz.Rect(pill_left, pill_top, pill_left + PILL_WIDTH, pill_top + PILL_HEIGHT)
        page.draw_rect(pill, color=None, fill=hex_to_unit_rgb(PILL_COLOR), radius=0.5)
        _centered_text(page, pill_left, PILL_WIDTH, pill_top + 5, label, 11, bold=True, color=WHITE)

        x += CELL_WIDTH + CELL_SPACING


def _draw_legend(page: fitz.Page, top: float) -> None:
    column_width = (page.rect.width - 160) / LEGEND_COLUMNS
    for idx, (label, color) in enumerate(legend_entries()):
        row, col = divmod(idx, LEGEND_COLUMNS)
        lx = 80 + col * column_width
        ly = top + row * LEGEND_ROW_HEIGHT
        page.draw_rect(
            fitz.Rect(lx, ly + 4, lx + SWATCH_SIZE, ly + 4 + SWATCH_SIZE),
            color=None,
            fill=hex_to_unit_rgb(color),
        )
        _text(page, lx + 25, ly + 6, label, 10)


def _draw_body_panel(
    page: fitz.Page,
    submission: Submission,
    fetch_image: FetchImage,
) -> float:
    """Panel with image cells and legend. Returns the panel's top edge."""
    width = page.rect.width
    panel_top = DETAILS_Y + 80
    panel = fitz.Rect(20, panel_top, width - 20, panel_top + PANEL_HEIGHT)
    page.draw_rect(
        panel,
        color=hex_to_unit_rgb(PANEL_BORDER),
        fill=hex_to_unit_rgb(PANEL_FILL),
        radius=_radius(panel, 12),
    )
    _text(page, 60, panel_top + 20, "SCREENING REPORT:", 16, bold=True)

    cells_top = panel_top + 60
    _draw_image_cells(page, submission, fetch_image, cells_top)
    _draw_legend(page, cells_top + CELL_HEIGHT + 70)
    return panel_top


class _RecommendationFlow:
    """Writes recommendation entries top to bottom, adding pages as needed."""

    def __init__(self, doc: fitz.Document, page: fitz.Page, top: float):
        self.doc = doc
        self.page = page
        self.width = page.rect.width
        self.bottom = page.rect.height - BOTTOM_MARGIN
        self.y = top
        self.text_width = self.width - 240

    def heading(self, text: str) -> None:
        _text(self.page, MARGIN, self.y, text, 16, bold=True, color=SECTION_COLOR)
        self.y += 35

    def new_page(self) -> None:
        self.page = self.doc.new_page(width=self.width, height=self.page.rect.height)
        self.y = MARGIN
        self.heading("TREATMENT RECOMMENDATIONS (continued):")

    def entry(self, label: str, text: str) -> None:
        lines = wrap_text(
            text,
            self.text_width,
            lambda s: fitz.get_text_length(s, fontname=FONT, fontsize=12),
        )
        height = max(REC_ENTRY_MIN_HEIGHT, 4 + len(lines) * REC_LINE_HEIGHT + 11)
        page_room = self.bottom - (MARGIN + 35)

        # Whole entries move to the next page; only an entry taller than a page splits
        if self.y + min(height, page_room) > self.bottom:
            self.new_page()

        page = self.page
        page.draw_rect(
            fitz.Rect(MARGIN, self.y + 2, MARGIN + SWATCH_SIZE, self.y + 2 + SWATCH_SIZE),
            color=None,
            fill=hex_to_unit_rgb(get_label_color(label)),
        )
        _text(page, 65, self.y + 4, f"{label}:", 12, bold=True)

        line_top = self.y + 4
        for line in lines:
            if line_top + REC_LINE_HEIGHT > self.bottom:
                self.new_page()
                line_top = self.y
            _text(self.page, REC_TEXT_X, line_top, line, 12)
            line_top += REC_LINE_HEIGHT

        self.y = max(self.y + REC_ENTRY_MIN_HEIGHT, line_top + 11)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def compose_report(
    submission: Submission,
    treatment_recommendations: Mapping[str, str],
    fetch_image: FetchImage,
    generated_on: Optional[date] = None,
    title: Optional[str] = None,
) -> bytes:
    """Render the screening report.

    Args:
        submission: Submission snapshot (slots and patient details)
        treatment_recommendations: Label -> treatment text; blank entries skipped
        fetch_image: Returns image bytes for a url; failures become placeholders
        generated_on: Date printed on the report (default: today)
        title: Header title (default: config.report_title)

    Returns:
        PDF bytes
    """
    generated_on = generated_on or date.today()
    title = title or config.report_title
    width, height = fitz.paper_size("a4")

    doc = fitz.open()
    try:
        page = doc.new_page(width=width, height=height)
        _draw_header(page, title)
        _draw_patient_details(page, submission, generated_on)
        panel_top = _draw_body_panel(page, submission, fetch_image)

        flow = _RecommendationFlow(doc, page, panel_top + PANEL_HEIGHT + 30)
        flow.heading("TREATMENT RECOMMENDATIONS:")
        entries = report_entries(treatment_recommendations)
        for label, text in entries:
            flow.entry(label, text)

        doc.set_metadata({
            "title": f"{title} Report",
            "subject": submission.patient_name,
            "creator": "oralscreen",
        })
        pdf_bytes = doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()

    logger.info(
        f"Composed report for {submission.id}: {len(entries)} recommendations, "
        f"{len(pdf_bytes)} bytes"
    )
    return pdf_bytes
