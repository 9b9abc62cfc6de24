"""
Field Renderer
==============
Draws text field values onto a copy of a template PDF.

One reportlab overlay is built per touched page and merged onto the
template page with PyPDF2. The template file itself is only read.
"""

from collections import defaultdict
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from PyPDF2 import PdfReader, PdfWriter
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from core.errors import ConfigurationError
from core.logger import logger
from services.signing.coordinates import TOP_LEFT, resolve_page_index
from services.signing.pdf_io import merge_overlay, page_size, write_pdf
from services.signing.templates import FieldPlacement, TemplateField

FONT_NAME = "Helvetica"


def text_width(text: str, size: float) -> float:
    return stringWidth(text, FONT_NAME, size)


def _split_word(word: str, size: float, max_width: float) -> List[str]:
    """Break a single word wider than ``max_width`` into fitting chunks."""
    chunks, current = [], ""
    for char in word:
        if current and text_width(current + char, size) > max_width:
            chunks.append(current)
            current = char
        else:
            current += char
    if current:
        chunks.append(current)
    return chunks


def wrap_lines(text: str, size: float, max_width: Optional[float]) -> List[str]:
    """
    Greedy word wrap measured with Helvetica metrics at ``size``.

    Without ``max_width`` the text is a single line. Every returned line is
    non-empty, keeps the original word order and measures at most
    ``max_width``.
    """
    if not max_width:
        return [text]

    lines: List[str] = []
    line = ""
    for word in str(text).split():
        if text_width(word, size) > max_width:
            if line:
                lines.append(line)
            *head, line = _split_word(word, size, max_width)
            lines.extend(head)
            continue
        candidate = f"{line} {word}" if line else word
        if text_width(candidate, size) <= max_width:
            line = candidate
        else:
            lines.append(line)
            line = word
    if line:
        lines.append(line)
    return lines


def _draw(c: canvas.Canvas, page_height: float, placement: FieldPlacement, value: str) -> None:
    y = page_height - placement.y if placement.origin == TOP_LEFT else placement.y
    c.setFont(FONT_NAME, placement.size)
    c.setFillColorRGB(0, 0, 0)
    step = placement.size * placement.line_height
    for i, line in enumerate(wrap_lines(value, placement.size, placement.max_width)):
        c.drawString(placement.x, y - i * step, line)


def render_fields(
    template_path,
    field_map: Mapping[TemplateField, Tuple[FieldPlacement, ...]],
    values: Mapping[str, Any],
    out_path,
) -> Path:
    """
    Render every non-empty value of ``values`` at its mapped placements.

    Args:
        template_path: Source PDF, never modified
        field_map: Field identifier to one or more placements
        values: Flat input keyed by field identifier value (e.g. "businessName")
        out_path: Where the new PDF is written

    Returns:
        Path of the written PDF
    """
    template_path = Path(template_path)
    if not template_path.exists():
        raise ConfigurationError(f"Template file missing: {template_path.name}")

    logger.info(f"PDF_DRAW_START template={template_path} out={out_path}")
    reader = PdfReader(str(template_path))
    page_count = len(reader.pages)

    per_page: Dict[int, List[Tuple[FieldPlacement, str]]] = defaultdict(list)
    for field_id, placements in field_map.items():
        raw = values.get(field_id.value)
        value = "" if raw is None else str(raw)
        if not value:
            continue
        for placement in placements:
            index = resolve_page_index(page_count, placement.page, f'field "{field_id.value}"')
            per_page[index].append((placement, value))

    writer = PdfWriter()
    for index, page in enumerate(reader.pages):
        draws = per_page.get(index)
        if draws:
            width, height = page_size(page)
            buffer = BytesIO()
            c = canvas.Canvas(buffer, pagesize=(width, height))
            for placement, value in draws:
                _draw(c, height, placement, value)
            c.save()
            merge_overlay(page, buffer.getvalue())
        writer.add_page(page)

    write_pdf(writer, out_path)
    logger.info(f"PDF_DRAW_OK out={out_path}")
    return Path(out_path)
