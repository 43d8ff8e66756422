import io
import re

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from docledger import service as service_module
from docledger.api import create_app
from docledger.certificate import parse_payload
from docledger.config import Settings
from docledger.digest import digest_bytes
from docledger.errors import RegistryUnavailable
from docledger.ledger.local import LocalRegistry

DOC = b"Minutes of the board meeting\nAll motions carried.\n"


def _upload(client, name="doc.txt", data=DOC, content_type="text/plain"):
    return client.post("/api/upload", files={"document": (name, data, content_type)})


def test_end_to_end_text_document(client, settings):
    resp = _upload(client)
    assert resp.status_code == 200, resp.text
    body = resp.json()

    cert = body["certificateNumber"]
    assert re.fullmatch(r"CERT-\d{8}-\d{4}", cert)
    assert body["documentHash"] == digest_bytes(DOC)
    assert body["fileName"] == "doc.txt"
    assert body["fileSize"] == len(DOC)
    assert body["certifiedFileName"] == f"doc_CERTIFIED_{cert}.txt"
    assert body["downloadUrl"] == f"http://testserver/api/download/{body['certifiedFileName']}"
    assert len(body["txHash"]) == 64
    assert parse_payload(body["qrData"]).certificate_number == cert
    assert (settings.qr_dir / f"{cert}.png").is_file()

    record = client.get(f"/api/document/{cert}").json()
    assert record["exists"] is True
    assert record["documentHash"] == digest_bytes(DOC)

    download = client.get(f"/api/download/{body['certifiedFileName']}")
    assert download.status_code == 200
    assert download.headers["content-disposition"].startswith("attachment")
    stamped = download.content
    assert stamped.startswith(DOC)

    original = client.post(
        "/api/verify-upload",
        files={"document": ("doc.txt", DOC, "text/plain")},
        data={"certificateNumber": cert},
    ).json()
    assert original["isValid"] is True

    certified = client.post(
        "/api/verify-upload",
        files={"document": (body["certifiedFileName"], stamped, "text/plain")},
    ).json()
    assert certified["isValid"] is True
    assert certified["certificateNumber"] == cert

    flipped = bytearray(stamped)
    flipped[3] ^= 0x01
    tampered = client.post(
        "/api/verify-upload",
        files={"document": (body["certifiedFileName"], bytes(flipped), "text/plain")},
    ).json()
    assert tampered["isValid"] is False


def test_legacy_download_route(client):
    body = _upload(client).json()
    resp = client.get(f"/download/{body['certifiedFileName']}")
    assert resp.status_code == 200
    assert resp.headers["content-disposition"].startswith("attachment")


def test_pdf_and_image_uploads_produce_pdfs(client, pdf_bytes, png_bytes):
    pdf = _upload(client, "report.pdf", pdf_bytes, "application/pdf").json()
    png = _upload(client, "photo.png", png_bytes, "image/png").json()
    assert pdf["certifiedFileName"].endswith(".pdf")
    assert png["certifiedFileName"].endswith(".pdf")

    stamped = client.get(f"/api/download/{png['certifiedFileName']}")
    assert stamped.headers["content-type"] == "application/pdf"

    verdict = client.post(
        "/api/verify-upload",
        files={"document": (png["certifiedFileName"], stamped.content, "application/pdf")},
    ).json()
    assert verdict["isValid"] is True
    assert verdict["source"] == "pdf-metadata"


def test_verify_by_hash(client):
    body = _upload(client).json()
    ok = client.post(
        "/api/verify",
        json={"certificateNumber": body["certificateNumber"], "documentHash": body["documentHash"]},
    ).json()
    assert ok["isValid"] is True
    assert ok["registeredHash"] == ok["providedHash"]

    bad = client.post(
        "/api/verify",
        json={"certificateNumber": body["certificateNumber"], "documentHash": "00" * 32},
    ).json()
    assert bad["isValid"] is False
    assert bad["status"] == "hash_mismatch"
    assert bad["timestamp"] == ok["timestamp"]


def test_verify_requires_fields(client):
    resp = client.post("/api/verify", json={"certificateNumber": "CERT-12345678-0001"})
    assert resp.status_code == 400
    assert "required" in resp.json()["error"]


def test_verify_qr(client):
    body = _upload(client).json()
    ok = client.post("/api/verify-qr", json={"qrData": body["qrData"]}).json()
    assert ok["isValid"] is True

    resp = client.post("/api/verify-qr", json={"qrData": "{not json"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_certificate_data"


def test_verify_upload_without_certificate(client):
    resp = client.post("/api/verify-upload", files={"document": ("doc.txt", DOC, "text/plain")})
    assert resp.status_code == 404
    assert resp.json()["code"] == "no_certificate_found"


def test_unknown_document_is_404(client):
    resp = client.get("/api/document/CERT-00000000-0000")
    assert resp.status_code == 404
    assert resp.json()["exists"] is False


def test_download_rejects_unknown_and_traversal(client):
    assert client.get("/api/download/missing.pdf").status_code == 404
    assert client.get("/api/download/..%2Fledger.jsonl").status_code == 404


def test_upload_requires_file(client):
    resp = client.post("/api/upload")
    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"


def test_upload_rejects_disallowed_type(client, settings):
    resp = _upload(client, "tool.exe", b"MZ\x90\x00", "application/octet-stream")
    assert resp.status_code == 400
    assert list(settings.uploads_dir.iterdir()) == []


def test_upload_rejects_oversized_file(tmp_path, registry):
    settings = Settings(data_dir=tmp_path / "data", max_upload_bytes=1024)
    with TestClient(create_app(settings, registry)) as small:
        resp = _upload(small, data=b"x" * 2048)
    assert resp.status_code == 413
    assert list(settings.uploads_dir.iterdir()) == []


def test_duplicate_certificate_number_cleans_up(client, settings, monkeypatch):
    monkeypatch.setattr(service_module, "generate_certificate_number", lambda: "CERT-12345678-0001")
    assert _upload(client).status_code == 200

    resp = _upload(client, data=b"another document\n")
    assert resp.status_code == 409
    assert resp.json()["code"] == "already_exists"
    assert len(list(settings.uploads_dir.iterdir())) == 1


class UnreachableRegistry(LocalRegistry):
    def register(self, certificate_number, document_hash):
        raise RegistryUnavailable("Failed to register on blockchain", details="connection refused")


def test_registry_outage_is_surfaced(tmp_path, settings):
    with TestClient(create_app(settings, UnreachableRegistry(tmp_path / "down.jsonl"))) as down:
        resp = _upload(down)
    assert resp.status_code == 503
    assert resp.json()["details"] == "connection refused"
    assert list(settings.uploads_dir.iterdir()) == []
    assert list(settings.certified_dir.iterdir()) == []


def test_health_and_root(client):
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["ledger"]["backend"] == "local"
    assert "/api/upload" in client.get("/").json()["endpoints"]


@pytest.mark.parametrize("name", ["scan.jpeg", "scan.JPG"])
def test_jpeg_extensions_are_accepted(client, name):
    buf = io.BytesIO()
    Image.new("RGB", (64, 64), (0, 0, 255)).save(buf, format="JPEG")
    resp = _upload(client, name, buf.getvalue(), "image/jpeg")
    assert resp.status_code == 200, resp.text


@pytest.mark.parametrize("anchor", [b"STATUS: SECURED", b"DOCUMENT HASH: ", b"END OF", b"VERIFICATION: "])
def test_byte_flip_in_certificate_trailer_is_invalid(client, anchor):
    body = _upload(client).json()
    stamped = client.get(f"/api/download/{body['certifiedFileName']}").content

    flipped = bytearray(stamped)
    flipped[stamped.rindex(anchor) + len(anchor) - 1] ^= 0x80
    verdict = client.post(
        "/api/verify-upload",
        files={"document": (body["certifiedFileName"], bytes(flipped), "text/plain")},
    ).json()
    assert verdict["isValid"] is False
    assert verdict["status"] == "content_altered"


def test_undecodable_image_is_rejected_before_registration(client, registry, settings):
    resp = _upload(client, "photo.png", b"\x89PNG not an image", "image/png")
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"
    assert registry.describe()["records"] == 0
    assert list(settings.uploads_dir.iterdir()) == []


def test_empty_upload_has_its_own_message(client):
    resp = _upload(client, "empty.txt", b"")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Uploaded file is empty"


class BrokenRegistry(LocalRegistry):
    def lookup(self, certificate_number):
        raise KeyError("box cache corrupted")


def test_unexpected_errors_are_json(tmp_path, settings):
    app = create_app(settings, BrokenRegistry(tmp_path / "broken.jsonl"))
    with TestClient(app, raise_server_exceptions=False) as broken:
        resp = broken.get("/api/document/CERT-12345678-0001")
    assert resp.status_code == 500
    assert resp.json()["error"] == "Internal server error"
    assert "box cache corrupted" in resp.json()["details"]
