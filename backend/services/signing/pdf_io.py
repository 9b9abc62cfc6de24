"""PDF page geometry and whole-file writes shared by renderer and stamper."""

import os
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Tuple

from PyPDF2 import PdfReader, PdfWriter


def page_size(page) -> Tuple[float, float]:
    """(width, height) of a PyPDF2 page in points."""
    return float(page.mediabox.width), float(page.mediabox.height)


def merge_overlay(page, overlay_bytes: bytes) -> None:
    """Merge the first page of ``overlay_bytes`` onto ``page``."""
    page.merge_page(PdfReader(BytesIO(overlay_bytes)).pages[0])


def write_pdf(writer: PdfWriter, out_path: Path) -> Path:
    """
    Write ``writer`` to ``out_path`` via a temp file and rename, so readers
    of a previous artifact never see a partial file.
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(suffix=".pdf", dir=str(out_path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            writer.write(f)
        os.replace(tmp_name, out_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return out_path
