"""Check a claimed (certificate number, hash) pair against the ledger.

Three ways in (explicit hash, uploaded file, scanned QR payload), one way
out: `registry.verify` decides validity, `registry.lookup` is only consulted
to tell a hash mismatch apart from an unknown certificate.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from .certificate import is_certificate_number, parse_payload
from .digest import digest_bytes
from .errors import NoCertificateFound, ValidationError
from .ledger.base import LedgerRegistry, RegistrationRecord
from .stamper import ExtractedCertificate, extract_payload, render_text_trailer

logger = logging.getLogger(__name__)

VALID           = "valid"
HASH_MISMATCH   = "hash_mismatch"
NOT_FOUND       = "not_found"
CONTENT_ALTERED = "content_altered"

MESSAGES = {
    VALID:           "✓ Document is VALID and verified on blockchain",
    HASH_MISMATCH:   "✗ Document verification FAILED - hash mismatch",
    NOT_FOUND:       "✗ Document verification FAILED - certificate not found",
    CONTENT_ALTERED: "✗ Document verification FAILED - document content was altered after certification",
}


def registration_date(timestamp: int) -> str | None:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class Verdict:
    is_valid: bool
    status: str
    certificate_number: str
    timestamp: int
    registered_hash: str | None
    provided_hash: str
    source: str = "hash"

    @property
    def message(self) -> str:
        return MESSAGES[self.status]

    def to_dict(self) -> dict:
        return {
            "success": True,
            "isValid": self.is_valid,
            "status": self.status,
            "certificateNumber": self.certificate_number,
            "timestamp": self.timestamp,
            "registeredHash": self.registered_hash,
            "providedHash": self.provided_hash,
            "registrationDate": registration_date(self.timestamp),
            "source": self.source,
            "message": self.message,
        }


class Reconciler:
    def __init__(self, registry: LedgerRegistry) -> None:
        self.registry = registry

    def verify_hash(self, certificate_number: str, document_hash: str) -> Verdict:
        certificate_number = (certificate_number or "").strip()
        document_hash = (document_hash or "").strip().lower()
        if not certificate_number or not document_hash:
            raise ValidationError("Certificate number and document hash are required")
        return self._reconcile(certificate_number, document_hash, source="hash")

    def verify_payload(self, qr_data: str) -> Verdict:
        if not (qr_data or "").strip():
            raise ValidationError("qrData is required")
        payload = parse_payload(qr_data)
        return self._reconcile(payload.certificate_number, payload.document_hash, source="qr")

    def verify_document(self, data: bytes, filename: str, certificate_number: str | None = None) -> Verdict:
        """Verify an uploaded file.

        A stamped copy is checked by the claim it carries; a file without an
        embedded payload is treated as the original and re-digested, which
        needs the certificate number from the caller.
        """
        certificate_number = (certificate_number or "").strip() or None
        extracted = extract_payload(data, filename)

        if extracted is not None:
            claim = extracted.payload
            if certificate_number and certificate_number != claim.certificate_number:
                raise ValidationError(
                    "Certificate number does not match the certificate embedded in the document",
                    details={"provided": certificate_number, "embedded": claim.certificate_number},
                )
            logger.info(f"[VERIFY] {filename}: embedded certificate {claim.certificate_number} via {extracted.source}")

            verdict = self._reconcile(claim.certificate_number, claim.document_hash, source=extracted.source)
            if verdict.is_valid and extracted.trailer is not None:
                return self._check_text_copy(verdict, extracted)
            return verdict

        if certificate_number is None:
            raise NoCertificateFound(
                "No certificate found in document",
                details="Upload a certified copy or provide the certificate number of the original",
            )
        if not is_certificate_number(certificate_number):
            raise ValidationError("Malformed certificate number", details=certificate_number)

        return self._reconcile(certificate_number, digest_bytes(data), source="upload")

    def _check_text_copy(self, verdict: Verdict, extracted: ExtractedCertificate) -> Verdict:
        # A certified text copy is the original plus a trailer rendered from the
        # ledger record, so both halves can be reproduced byte for byte.
        record = RegistrationRecord(verdict.certificate_number, verdict.provided_hash, verdict.timestamp)
        expected = render_text_trailer(record, extracted.verify_url)
        original_hash = (
            digest_bytes(extracted.original_bytes) if extracted.original_bytes is not None else None
        )
        if extracted.trailer == expected and original_hash == verdict.provided_hash:
            return verdict

        part = "certificate trailer" if original_hash == verdict.provided_hash else "content above the certificate"
        logger.warning(f"[VERIFY] {verdict.certificate_number}: {part} was modified")
        return Verdict(
            is_valid=False,
            status=CONTENT_ALTERED,
            certificate_number=verdict.certificate_number,
            timestamp=verdict.timestamp,
            registered_hash=verdict.registered_hash,
            provided_hash=original_hash or verdict.provided_hash,
            source=verdict.source,
        )

    def _reconcile(self, certificate_number: str, document_hash: str, source: str) -> Verdict:
        result = self.registry.verify(certificate_number, document_hash)
        record = self.registry.lookup(certificate_number)

        if result.matches:
            status = VALID
        elif record is None:
            status = NOT_FOUND
        else:
            status = HASH_MISMATCH

        logger.info(f"[VERIFY] {certificate_number} ({source}): {status}")
        return Verdict(
            is_valid=result.matches,
            status=status,
            certificate_number=certificate_number,
            timestamp=result.timestamp,
            registered_hash=record.document_hash if record else None,
            provided_hash=document_hash,
            source=source,
        )
