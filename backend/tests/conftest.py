"""
Pytest Configuration and Fixtures
==================================
Shared test fixtures for the signing backend tests.
"""

import base64
import os
import sys
from io import BytesIO
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("LOG_TO_FILE", "0")

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from core.config import Settings
from services.signing.context import build_context
from services.signing.templates import TEMPLATE_CONFIG

TEMPLATE_PAGES = {
    "Engagement-letter.pdf": 4,
    "guarantee-page.pdf": 1,
    "privacy-policy.pdf": 1,
    "terms.pdf": 4,
}

DIRECTORS = ["director.one@example.com", "director.two@example.com"]


def make_pdf(path: Path, pages: int, size=letter) -> Path:
    """Blank template PDF with a page marker on each page."""
    c = canvas.Canvas(str(path), pagesize=size)
    for number in range(1, pages + 1):
        c.setFont("Helvetica", 8)
        c.drawString(20, 20, f"template page {number}")
        c.showPage()
    c.save()
    return path


def png_data_url(width: int = 300, height: int = 100) -> str:
    image = Image.new("RGBA", (width, height), (255, 255, 255, 0))
    for x in range(20, width - 20):
        image.putpixel((x, height // 2), (0, 0, 0, 255))
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


class FakeMailer:
    """In-memory mail transport."""

    configured = False

    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)

    def safe_send(self, message):
        self.sent.append(message)
        return True


class RecordingArchiver:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def __call__(self, agreement, reason):
        self.calls.append((agreement.id, reason))
        if self.fail:
            raise RuntimeError("graph unavailable")


@pytest.fixture
def templates_dir(tmp_path):
    directory = tmp_path / "pdf-templates"
    directory.mkdir()
    for name, pages in TEMPLATE_PAGES.items():
        make_pdf(directory / name, pages)
    assert sorted(TEMPLATE_PAGES) == sorted(t["file"] for t in TEMPLATE_CONFIG)
    return directory


@pytest.fixture
def settings(tmp_path, templates_dir):
    s = Settings(
        jwt_secret="test-secret",
        database_url=f"sqlite:///{tmp_path / 'signing-test.db'}",
        public_web_url="http://sign.test",
        pdf_dir=tmp_path / "pdfs",
        signature_dir=tmp_path / "signatures",
        templates_dir=templates_dir,
        agreements_inbox="agreements@example.com",
        director_emails=list(DIRECTORS),
        director_mail_pause_seconds=7.0,
    )
    s.ensure_dirs()
    return s


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def archiver():
    return RecordingArchiver()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def context(settings, mailer, archiver, sleeps):
    ctx = build_context(settings, mailer=mailer, archiver=archiver, sleep=sleeps.append)
    ctx.database.init_db()
    return ctx


@pytest.fixture
def signature():
    return png_data_url()


@pytest.fixture
def agreement_payload():
    return {
        "CompanyName": "Acme Widgets Pty Ltd",
        "ClientFullName": "Jordan Smith",
        "ClientEmail": "jordan@acme.example",
        "MobileNumber": "0400 000 000",
        "TradingName": "Acme",
        "ACN_ABN": "123 456 789",
        "NameOfDirector": "Alex Director",
        "MainService": "Bookkeeping",
        "additionalNotes": "Please call before 10am on weekdays regarding onboarding",
    }


@pytest.fixture
def client(context):
    """FastAPI test client fixture."""
    from main import create_app

    with TestClient(create_app(context)) as client:
        yield client
