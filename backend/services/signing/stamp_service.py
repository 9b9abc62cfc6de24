"""
Stamp Service
=============
Embeds a handwritten signature and a "signed at" timestamp into a PDF.

Uses PyPDF2 + reportlab for:
- Decoding the signature PNG sent by the signing pad as a data URL
- Placing it at the template anchor (caller overrides win field by field)
- Writing "<label>: <local time>" just below the image
"""

import base64
import binascii
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Tuple

from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from core.errors import ValidationError
from core.logger import logger
from services.signing.clock import DEFAULT_TIMEZONE, format_timestamp, local_now
from services.signing.coordinates import TOP_LEFT, ResolvedPlacement, resolve_placement
from services.signing.pdf_io import merge_overlay, page_size, write_pdf

LABEL_FONT = "Helvetica"
LABEL_SIZE = 10
LABEL_GAP = 14


def decode_data_url(data_url: str) -> bytes:
    """Image bytes from ``data:image/png;base64,....`` (or a bare base64 body)."""
    if not data_url or not isinstance(data_url, str):
        raise ValidationError("Signature is required")
    body = data_url.split(",", 1)[1] if "," in data_url else data_url
    try:
        raw = base64.b64decode(body.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Signature image is not valid base64")
    if not raw:
        raise ValidationError("Signature image is empty")
    return raw


def load_image(image_bytes: bytes) -> Tuple[ImageReader, Tuple[int, int]]:
    """reportlab image plus its native pixel size."""
    try:
        image = ImageReader(BytesIO(image_bytes))
        return image, image.getSize()
    except Exception as e:
        raise ValidationError(f"Signature image could not be read: {e}")


class StampService:
    """
    Service for stamping signatures into PDF documents.

    Features:
    - Geometry resolved and clamped to the page
    - Localized timestamp label in Helvetica 10, black
    - Whole-file output, input PDF untouched
    """

    def __init__(
        self,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.timezone = timezone
        self._clock = clock

    def timestamp(self) -> str:
        now = self._clock() if self._clock else None
        return format_timestamp(local_now(self.timezone, now))

    def stamp_signature(
        self,
        in_path,
        signature_data_url: str,
        template_anchor: Optional[Mapping[str, Any]],
        override: Optional[Mapping[str, Any]],
        out_path,
        label: str = "Signed at",
    ) -> Path:
        """
        Stamp a signature image into ``in_path`` and write ``out_path``.

        Args:
            in_path: Base PDF
            signature_data_url: PNG as a data URL
            template_anchor: Template default rectangle
            override: Caller-supplied rectangle fields
            out_path: Destination for the stamped PDF
            label: Prefix of the timestamp line

        Returns:
            Path to the stamped PDF
        """
        logger.info(f"PDF_STAMP_START in={in_path} out={out_path} label={label!r}")
        image, native_size = load_image(decode_data_url(signature_data_url))

        reader = PdfReader(str(in_path))
        pages = reader.pages
        placement = resolve_placement(
            page_count=len(pages),
            page_size=lambda index: page_size(pages[index]),
            template_anchor=template_anchor,
            override=override,
            label=label,
            default_size=native_size,
        )

        writer = PdfWriter()
        for index, page in enumerate(pages):
            if index == placement.page_index:
                overlay = self._create_stamp_overlay(page_size(page), image, placement, label)
                merge_overlay(page, overlay)
            writer.add_page(page)

        write_pdf(writer, out_path)
        logger.info(f"PDF_STAMP_OK out={out_path}")
        return Path(out_path)

    def _create_stamp_overlay(
        self,
        size: Tuple[float, float],
        image: ImageReader,
        placement: ResolvedPlacement,
        label: str,
    ) -> bytes:
        """
        Create a single-page PDF holding just the signature and its label.
        """
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=size)

        x, y = placement.x, placement.y
        if placement.origin == TOP_LEFT:
            y = size[1] - y - placement.height

        c.drawImage(
            image,
            x, y,
            width=placement.width,
            height=placement.height,
            mask="auto",
        )

        c.setFont(LABEL_FONT, LABEL_SIZE)
        c.setFillColorRGB(0, 0, 0)
        c.drawString(x, y - LABEL_GAP, f"{label}: {self.timestamp()}")

        c.save()
        return buffer.getvalue()
