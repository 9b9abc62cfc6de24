"""
Stamp Service Tests
===================
Unit tests for signature stamping.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from PyPDF2 import PdfReader

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from core.errors import ValidationError
from services.signing.stamp_service import StampService, decode_data_url, load_image
from conftest import make_pdf, png_data_url

# 15:04:05 in Melbourne (AEDT, UTC+11)
FIXED_UTC = datetime(2026, 10, 18, 4, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def stamper():
    return StampService(timezone="Australia/Melbourne", clock=lambda: FIXED_UTC)


class TestDecodeDataUrl:
    def test_strips_metadata_prefix(self):
        raw = decode_data_url(png_data_url(10, 10))
        assert raw.startswith(b"\x89PNG")

    def test_bare_base64_is_accepted(self):
        body = png_data_url(10, 10).split(",", 1)[1]
        assert decode_data_url(body).startswith(b"\x89PNG")

    @pytest.mark.parametrize("bad", ["", None, "data:image/png;base64,", "data:image/png;base64,@@@"])
    def test_malformed_payload(self, bad):
        with pytest.raises(ValidationError):
            decode_data_url(bad)

    def test_unreadable_image(self):
        with pytest.raises(ValidationError):
            load_image(b"not an image at all")


class TestStampSignature:
    def test_label_and_timestamp_are_drawn(self, stamper, tmp_path):
        base = make_pdf(tmp_path / "base.pdf", 2)
        out = tmp_path / "stamped.pdf"

        stamper.stamp_signature(
            base, png_data_url(), {"page": 2, "x": 100, "y": 100, "width": 150, "height": 50},
            None, out, "Client signed at",
        )

        reader = PdfReader(str(out))
        assert len(reader.pages) == 2
        text = reader.pages[1].extract_text()
        assert "Client signed at" in text
        assert "18/10/2026" in text
        assert "Client signed at" not in reader.pages[0].extract_text()

    def test_input_is_untouched(self, stamper, tmp_path):
        base = make_pdf(tmp_path / "base.pdf", 1)
        before = base.read_bytes()
        stamper.stamp_signature(base, png_data_url(), {"page": 1, "x": 10, "y": 10}, None, tmp_path / "o.pdf")
        assert base.read_bytes() == before

    def test_override_page_is_clamped(self, stamper, tmp_path):
        base = make_pdf(tmp_path / "base.pdf", 1)
        out = tmp_path / "o.pdf"
        stamper.stamp_signature(base, png_data_url(), {"page": 4, "x": 380, "y": 80}, {"page": 12}, out, "Signed")
        assert "Signed" in PdfReader(str(out)).pages[0].extract_text()

    def test_malformed_signature_writes_nothing(self, stamper, tmp_path):
        base = make_pdf(tmp_path / "base.pdf", 1)
        out = tmp_path / "o.pdf"
        with pytest.raises(ValidationError):
            stamper.stamp_signature(base, "data:image/png;base64,AAAA", {"page": 1}, None, out)
        assert not out.exists()

    def test_timestamp_format(self, stamper):
        assert stamper.timestamp() == "18/10/2026, 3:04:05 pm"
