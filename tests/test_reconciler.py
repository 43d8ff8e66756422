import pytest

from docledger.certificate import encode_payload
from docledger.digest import digest_bytes
from docledger.errors import InvalidCertificateData, NoCertificateFound, ValidationError
from docledger.qr import render_qr_png
from docledger.reconciler import CONTENT_ALTERED, HASH_MISMATCH, NOT_FOUND, VALID, Reconciler
from docledger.stamper import TRAILER_MARKER, stamp_document

CERT = "CERT-12345678-0007"
ORIGINAL = b"Grant agreement\nAmount: 10,000 EUR\n"


@pytest.fixture
def reconciler(registry):
    return Reconciler(registry)


@pytest.fixture
def registered(registry):
    return registry.register(CERT, digest_bytes(ORIGINAL))


@pytest.fixture
def stamped_text(tmp_path, registered):
    record = registered.record
    qr_png = render_qr_png(encode_payload(record.certificate_number, record.document_hash))
    out = stamp_document(ORIGINAL, "grant.txt", record, tmp_path, qr_png=qr_png, verify_url="http://testserver")
    return out.name, out.read_bytes()


def test_verify_hash_valid(reconciler, registered):
    verdict = reconciler.verify_hash(CERT, registered.record.document_hash)
    assert verdict.is_valid
    assert verdict.status == VALID
    assert verdict.timestamp == registered.record.timestamp
    body = verdict.to_dict()
    assert body["registeredHash"] == body["providedHash"] == registered.record.document_hash
    assert body["registrationDate"].startswith("2023-11-14T")


def test_verify_hash_mismatch_reports_registered_hash(reconciler, registered):
    verdict = reconciler.verify_hash(CERT, "00" * 32)
    assert not verdict.is_valid
    assert verdict.status == HASH_MISMATCH
    assert verdict.registered_hash == registered.record.document_hash
    assert verdict.timestamp == registered.record.timestamp
    assert "hash mismatch" in verdict.message


def test_verify_hash_unknown_certificate(reconciler):
    verdict = reconciler.verify_hash("CERT-99999999-9999", "00" * 32)
    assert verdict.status == NOT_FOUND
    assert verdict.timestamp == 0
    assert verdict.registered_hash is None
    assert verdict.to_dict()["registrationDate"] is None


def test_verify_hash_requires_both_fields(reconciler):
    with pytest.raises(ValidationError):
        reconciler.verify_hash(CERT, "")


def test_verify_payload(reconciler, registered):
    verdict = reconciler.verify_payload(encode_payload(CERT, registered.record.document_hash))
    assert verdict.is_valid
    assert verdict.source == "qr"

    with pytest.raises(InvalidCertificateData):
        reconciler.verify_payload('{"certificateNumber": "nope"}')


def test_original_document_with_certificate_number(reconciler, registered):
    verdict = reconciler.verify_document(ORIGINAL, "grant.txt", CERT)
    assert verdict.is_valid
    assert verdict.source == "upload"


def test_original_document_needs_certificate_number(reconciler, registered):
    with pytest.raises(NoCertificateFound):
        reconciler.verify_document(ORIGINAL, "grant.txt")


def test_modified_original_fails(reconciler, registered):
    verdict = reconciler.verify_document(ORIGINAL + b"Amount: 99,000 EUR\n", "grant.txt", CERT)
    assert verdict.status == HASH_MISMATCH


def test_stamped_copy_verifies_by_embedded_claim(reconciler, stamped_text):
    name, data = stamped_text
    verdict = reconciler.verify_document(data, name)
    assert verdict.is_valid
    assert verdict.source == "text-trailer"
    assert verdict.certificate_number == CERT


def test_stamped_copy_with_edited_content_is_rejected(reconciler, stamped_text):
    name, data = stamped_text
    tampered = bytearray(data)
    tampered[0] ^= 0x20
    verdict = reconciler.verify_document(bytes(tampered), name)
    assert not verdict.is_valid
    assert verdict.status == CONTENT_ALTERED


def test_stamped_copy_with_forged_hash_is_rejected(reconciler, registered, stamped_text):
    name, data = stamped_text
    forged = data.replace(
        f'"documentHash":"{registered.record.document_hash}"'.encode(),
        f'"documentHash":"{"ee" * 32}"'.encode(),
    )
    verdict = reconciler.verify_document(forged, name)
    assert verdict.status == HASH_MISMATCH


def test_stamped_copy_with_conflicting_certificate_number(reconciler, stamped_text):
    name, data = stamped_text
    with pytest.raises(ValidationError):
        reconciler.verify_document(data, name, "CERT-00000000-0000")


def _flip(data: bytes, at: int) -> bytes:
    flipped = bytearray(data)
    flipped[at] ^= 0x01
    return bytes(flipped)


@pytest.mark.parametrize(
    "anchor, offset",
    [
        (b"DOCUMENT HASH: ", len(b"DOCUMENT HASH: ")),
        (b"CERTIFICATE NUMBER: CERT", len(b"CERTIFICATE NUMBER: CERT-")),
        (b"CERTIFICATION DATE: ", len(b"CERTIFICATION DATE: ") + 3),
        (b"STATUS: SECURED", len(b"STATUS: ")),
        (b"END OF", 0),
    ],
)
def test_edited_certificate_trailer_is_rejected(reconciler, stamped_text, anchor, offset):
    name, data = stamped_text
    verdict = reconciler.verify_document(_flip(data, data.rindex(anchor) + offset), name)
    assert not verdict.is_valid
    assert verdict.status == CONTENT_ALTERED


def test_forged_visible_hash_is_content_altered(reconciler, stamped_text):
    name, data = stamped_text
    at = data.rindex(b"DOCUMENT HASH: ") + len(b"DOCUMENT HASH: ")
    verdict = reconciler.verify_document(_flip(data, at), name)
    assert verdict.status == CONTENT_ALTERED
    assert verdict.provided_hash == digest_bytes(ORIGINAL)


def test_damaged_trailer_marker_is_content_altered(reconciler, stamped_text):
    name, data = stamped_text
    at = data.rindex(TRAILER_MARKER) + TRAILER_MARKER.index(b"BLOCKCHAIN")
    verdict = reconciler.verify_document(_flip(data, at), name)
    assert not verdict.is_valid
    assert verdict.status == CONTENT_ALTERED
