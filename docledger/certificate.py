"""Certificate identifiers and the compact payload embedded in stamped files."""

import json
import re
import secrets
import time
from dataclasses import dataclass

from .errors import InvalidCertificateData

CERT_PREFIX = "CERT"
CERT_PATTERN = re.compile(r"^CERT-\d{8}-\d{4}$")
HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class CertificatePayload:
    certificate_number: str
    document_hash: str


def generate_certificate_number(now: float | None = None) -> str:
    """CERT-<last 8 digits of epoch millis>-<4 random digits>.

    Not collision-proof: a clash is rejected by the ledger as AlreadyExists.
    """
    millis = int((time.time() if now is None else now) * 1000)
    stamp = str(millis)[-8:].zfill(8)
    return f"{CERT_PREFIX}-{stamp}-{secrets.randbelow(10000):04d}"


def is_certificate_number(text: str) -> bool:
    return bool(CERT_PATTERN.match(text or ""))


def encode_payload(certificate_number: str, document_hash: str) -> str:
    return json.dumps(
        {"certificateNumber": certificate_number, "documentHash": document_hash},
        separators=(",", ":"),
    )


def parse_payload(text: str) -> CertificatePayload:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise InvalidCertificateData("Certificate data is not valid JSON", details=str(e)) from e

    if not isinstance(data, dict):
        raise InvalidCertificateData("Certificate data must be a JSON object")

    cert = data.get("certificateNumber")
    doc_hash = data.get("documentHash")
    if not isinstance(cert, str) or not isinstance(doc_hash, str):
        raise InvalidCertificateData("Certificate data is missing certificateNumber or documentHash")
    if not is_certificate_number(cert):
        raise InvalidCertificateData("Malformed certificate number", details=cert)
    if not HASH_PATTERN.match(doc_hash):
        raise InvalidCertificateData("Malformed document hash", details=doc_hash)

    return CertificatePayload(certificate_number=cert, document_hash=doc_hash.lower())
