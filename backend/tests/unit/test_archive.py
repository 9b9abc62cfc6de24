"""
Archive Tests
=============
Unit tests for SharePoint folder naming and Graph upload paths.
"""

import sys
from pathlib import Path

import pytest
import requests

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from core.config import Settings
from services.archive import CHUNK_SIZE, GraphArchive, agreement_files, safe_folder_name
from services.signing.records import Agreement, AgreementDocument, DirectorSlot


class TestSafeFolderName:
    @pytest.mark.parametrize("raw,expected", [
        ("Acme Widgets Pty Ltd", "Acme Widgets Pty Ltd"),
        ("Café Müller", "Cafe Muller"),
        ("A/B:C*D?", "A B C D"),
        ("  lots    of   space  ", "lots of space"),
        ("...hidden", "hidden"),
        ("", "Client"),
        (None, "Client"),
        ("Forms", "Client"),
        ("###", "Client"),
    ])
    def test_normalization(self, raw, expected):
        assert safe_folder_name(raw) == expected

    def test_length_cap(self):
        assert len(safe_folder_name("x" * 250)) == 100


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status_code = status
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


class FakeSession:
    """Records Graph calls; folders never exist yet."""

    def __init__(self):
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append(("POST", url))
        return FakeResponse(payload={"access_token": "tkn"})

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append((method, url))
        if method == "GET":
            return FakeResponse(404)
        if url.endswith(":/createUploadSession"):
            return FakeResponse(payload={"uploadUrl": "https://upload.example/session"})
        return FakeResponse(201)

    def put(self, url, data=None, headers=None, timeout=None):
        self.calls.append(("CHUNK", headers["Content-Range"]))
        return FakeResponse(202)


@pytest.fixture
def graph_settings():
    return Settings(
        graph_tenant_id="t", graph_client_id="c", graph_client_secret="secret",
        graph_site_id="s", graph_drive_id="drive", sp_base_path="Agreements",
    )


class TestGraphArchive:
    def test_skips_without_configuration(self):
        session = FakeSession()
        assert GraphArchive(Settings(), session=session).archive_agreement(Agreement()) is None
        assert session.calls == []

    def test_small_and_large_uploads(self, graph_settings, tmp_path):
        small = tmp_path / "small.pdf"
        small.write_bytes(b"%PDF small")
        large = tmp_path / "large.pdf"
        large.write_bytes(b"0" * (CHUNK_SIZE + 1024))

        agreement = Agreement(
            business_name="Café Co.",
            documents=[AgreementDocument(
                name="A",
                draft_pdf_path=str(small),
                final_signed_pdf_path=str(large),
                client_signed_pdf_path=str(tmp_path / "gone.pdf"),
            )],
        )
        session = FakeSession()
        folder = GraphArchive(graph_settings, session=session).archive_agreement(agreement)

        assert folder == "Agreements/Cafe Co"
        folders_created = [url for method, url in session.calls if method == "POST" and url.endswith("/children")]
        assert len(folders_created) == 2
        puts = [url for method, url in session.calls if method == "PUT"]
        assert len(puts) == 1 and puts[0].endswith("small.pdf:/content")
        chunks = [r for method, r in session.calls if method == "CHUNK"]
        assert chunks == [
            f"bytes 0-{CHUNK_SIZE - 1}/{CHUNK_SIZE + 1024}",
            f"bytes {CHUNK_SIZE}-{CHUNK_SIZE + 1023}/{CHUNK_SIZE + 1024}",
        ]

    def test_agreement_files_order(self):
        agreement = Agreement(documents=[AgreementDocument(
            name="A",
            draft_pdf_path="d.pdf",
            client_signed_pdf_path="c.pdf",
            final_signed_pdf_path="f.pdf",
            client_signature_image_path="c.png",
            directors=[DirectorSlot(email="x", signature_image_path="d1.png"), DirectorSlot(email="y")],
        )])
        assert agreement_files(agreement) == ["f.pdf", "c.pdf", "d.pdf", "c.png", "d1.png"]
