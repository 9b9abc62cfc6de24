"""
Integration Flow Tests
======================
End-to-end tests for the signing API: intake, client chain, director
chains and the error mapping.
"""

import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conftest import DIRECTORS

DOCUMENTS = ["ServiceAgreement", "CustomerInformation", "PricingSchedule", "ConfidentialityAgreement"]


def token_from_link(link: str) -> str:
    return link.split("/sign/")[1]


@pytest.fixture
def submitted(client, agreement_payload):
    client.post("/api/save-pricing-summary", json={
        "email": agreement_payload["ClientEmail"],
        "service": "Bookkeeping",
        "plan": {"name": "Growth", "price": 199},
        "addOns": [{"name": "Payroll", "price": 49}],
        "total": 248,
    })
    response = client.post("/api/submit-agreement", json=agreement_payload)
    assert response.status_code == 200
    return response.json()


class TestAPIEndpoints:
    """Operational endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "Backend is live"
        assert response.headers["X-Request-Id"].isdigit()

    def test_health_endpoint(self, client):
        data = client.get("/api/health").json()
        assert data["ok"] is True
        assert data["database"] == "ok"
        assert data["mailer"] == "log-only"
        assert data["archive"] == "disabled"

    def test_debug_templates(self, client):
        data = client.get("/api/debug/templates").json()
        assert len(data) == 4
        assert all(entry["exists"] for entry in data)

    def test_debug_directors(self, client):
        assert client.get("/api/debug/directors-env").json()["parsed"] == DIRECTORS


class TestIntake:
    def test_new_client_login(self, client, mailer):
        response = client.post("/api/new-client-login", json={
            "businessName": "Acme", "email": "a@acme.example", "phone": "0400",
        })
        assert response.status_code == 200
        assert mailer.sent[-1].to == "agreements@example.com"

    def test_pricing_summary_requires_plan(self, client):
        response = client.post("/api/save-pricing-summary", json={"email": "a@x", "plan": {"name": "Growth"}})
        assert response.status_code == 400
        assert response.json() == {"message": "Invalid or missing plan data."}

    def test_submit_requires_fields(self, client):
        response = client.post("/api/submit-agreement", json={"CompanyName": "Acme"})
        assert response.status_code == 400
        assert "Missing required fields" in response.json()["message"]

    def test_submit_returns_links(self, submitted, mailer):
        assert submitted["message"] == "Agreement saved, drafts generated."
        names = [link.split(":")[0].lstrip("• ") for link in submitted["signLinks"]]
        assert names == DOCUMENTS
        assert all("http://sign.test/sign/" in link for link in submitted["signLinks"])

        pack = mailer.sent[-1]
        assert pack.to == "jordan@acme.example"
        assert [a.filename for a in pack.attachments] == [f"{name}-Draft.pdf" for name in DOCUMENTS]


class TestSigningFlow:
    def test_session_and_preview(self, client, submitted):
        token = token_from_link(submitted["signLinks"][0])

        session = client.get(f"/api/sign/session/{token}")
        assert session.json() == {"name": "Acme Widgets Pty Ltd", "email": "jordan@acme.example"}
        assert client.get("/api/sign/session/not-a-token").json() == {}

        preview = client.get(f"/api/sign/preview/{token}")
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "application/pdf"
        assert preview.content.startswith(b"%PDF")

    def test_full_agreement(self, client, context, submitted, signature, mailer, archiver):
        agreement_id = submitted["agreementId"]

        token = token_from_link(submitted["signLinks"][0])
        for position in range(len(DOCUMENTS)):
            response = client.post(f"/api/sign/{token}", json={"signature": signature})
            assert response.status_code == 200
            body = response.json()
            if position < len(DOCUMENTS) - 1:
                token = body["nextDocToken"]
            else:
                assert body == {"complete": True}

        status = client.get(f"/api/agreements/{agreement_id}/status").json()
        assert status["stage"] == "collecting-director-signatures"
        assert all(len(doc["directors"]) == 2 for doc in status["documents"])

        agreement = context.agreements.load(agreement_id)
        for index in range(len(DIRECTORS)):
            token = agreement.documents[0].directors[index].sign_token
            for position in range(len(DOCUMENTS)):
                body = client.post(f"/api/sign-director/{token}", json={"signature": signature}).json()
                if position < len(DOCUMENTS) - 1:
                    token = body["nextDocToken"]
            expected = {"done": True} if index < len(DIRECTORS) - 1 else {"complete": True}
            assert body == expected

        status = client.get(f"/api/agreements/{agreement_id}/status").json()
        assert status["stage"] == "complete"
        assert status["directorSigned"] is True
        assert all(doc["stage"] == "final-signed" for doc in status["documents"])

        final = mailer.sent[-1]
        assert len(final.attachments) == len(DOCUMENTS)
        assert archiver.calls[-1] == (agreement_id, "final")

    def test_coordinate_override(self, client, submitted, signature):
        token = token_from_link(submitted["signLinks"][0])
        response = client.post(f"/api/sign/{token}", json={
            "signature": signature,
            "coords": {"page": 1, "x": 10, "y": 10, "width": 120, "height": 40, "origin": "bottom-left"},
        })
        assert response.status_code == 200
        assert "nextDocToken" in response.json()


class TestErrorMapping:
    def test_missing_signature(self, client, submitted):
        token = token_from_link(submitted["signLinks"][0])
        response = client.post(f"/api/sign/{token}", json={})
        assert response.status_code == 400
        assert response.json() == {"message": "Missing signature"}

    def test_bad_token(self, client, signature):
        response = client.post("/api/sign/garbage", json={"signature": signature})
        assert response.status_code == 403

    def test_client_token_on_director_route(self, client, submitted, signature):
        token = token_from_link(submitted["signLinks"][0])
        response = client.post(f"/api/sign-director/{token}", json={"signature": signature})
        assert response.status_code == 403
        assert response.json() == {"message": "Wrong link"}

    def test_out_of_order(self, client, submitted, signature):
        token = token_from_link(submitted["signLinks"][1])
        response = client.post(f"/api/sign/{token}", json={"signature": signature})
        assert response.status_code == 409

    def test_bad_origin(self, client, submitted, signature):
        token = token_from_link(submitted["signLinks"][0])
        response = client.post(f"/api/sign/{token}", json={"signature": signature, "coords": {"origin": "middle"}})
        assert response.status_code == 400

    def test_unknown_agreement_status(self, client):
        assert client.get("/api/agreements/missing/status").status_code == 404

    def test_unknown_page_selector(self, client, context, submitted, signature):
        token = token_from_link(submitted["signLinks"][0])
        response = client.post(f"/api/sign/{token}", json={"signature": signature, "coords": {"page": "first"}})
        assert response.status_code == 400
        assert list(Path(context.settings.signature_dir).iterdir()) == []

    def test_unhandled_error_keeps_request_id(self, client, context):
        from loguru import logger

        records = []
        sink = logger.add(lambda message: records.append(message.record), level="ERROR")

        def explode():
            raise RuntimeError("disk on fire")

        client.app.add_api_route("/api/explode", explode)
        try:
            response = client.get("/api/explode")
        finally:
            logger.remove(sink)

        assert response.status_code == 500
        assert response.json() == {"message": "Internal server error"}
        req_id = response.headers["X-Request-Id"]
        assert [r["extra"]["req_id"] for r in records if "UNHANDLED" in r["message"]] == [req_id]
