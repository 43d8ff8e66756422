"""Error taxonomy shared by the ledger, stamper, reconciler and HTTP layer.

Every error carries the HTTP status it maps to, so the API needs a single
exception handler to turn any of them into ``{"error", "code", "details"}``.
"""

from typing import Any


class DocLedgerError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(DocLedgerError):
    status_code = 400
    code = "validation_error"


class PayloadTooLarge(ValidationError):
    status_code = 413
    code = "payload_too_large"


class InvalidCertificateData(DocLedgerError):
    """An embedded or scanned payload was found but does not parse."""

    status_code = 400
    code = "invalid_certificate_data"


class NotFound(DocLedgerError):
    status_code = 404
    code = "not_found"


class NoCertificateFound(NotFound):
    """The uploaded file carries no embedded certificate payload."""

    code = "no_certificate_found"


class AlreadyExists(DocLedgerError):
    status_code = 409
    code = "already_exists"


class RenderingFailure(DocLedgerError):
    code = "rendering_failure"


class RegistryUnavailable(DocLedgerError):
    status_code = 503
    code = "registry_unavailable"
