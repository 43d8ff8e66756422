import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from .certificate import encode_payload, generate_certificate_number
from .config import Settings
from .digest import digest_bytes
from .errors import PayloadTooLarge, ValidationError
from .ledger.base import LedgerRegistry, Registration
from .qr import render_qr_png
from .stamper import ensure_decodable, stamp_document
from .storage import atomic_write, ensure_dirs, remove_quietly, unique_upload_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificationResult:
    registration: Registration
    file_name: str
    file_size: int
    certified_path: Path
    download_url: str
    qr_data: str

    def to_dict(self) -> dict:
        record = self.registration.record
        return {
            "success": True,
            "certificateNumber": record.certificate_number,
            "documentHash": record.document_hash,
            "timestamp": record.timestamp,
            "fileName": self.file_name,
            "certifiedFileName": self.certified_path.name,
            "fileSize": self.file_size,
            "txHash": self.registration.tx_hash,
            "downloadUrl": self.download_url,
            "qrData": self.qr_data,
            "message": "Document uploaded, certified with watermark, and registered on blockchain successfully",
        }


def validate_upload(settings: Settings, filename: str | None, data: bytes) -> str:
    """Check name, type and size of an upload; returns the clean file name."""
    if not filename:
        raise ValidationError("No file uploaded")
    if not data:
        raise ValidationError("Uploaded file is empty", details=filename)
    name = Path(filename).name
    if Path(name).suffix.lower() not in settings.allowed_extensions:
        raise ValidationError("Only PDF, PNG, JPG, JPEG, and TXT files are allowed", details=name)
    if len(data) > settings.max_upload_bytes:
        raise PayloadTooLarge(
            f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)}MB limit",
            details={"size": len(data)},
        )
    ensure_decodable(data, name)
    return name


class CertificationService:
    """Upload pipeline: save → fingerprint → register → QR → stamp."""

    def __init__(self, settings: Settings, registry: LedgerRegistry) -> None:
        self.settings = settings
        self.registry = registry
        ensure_dirs(settings.uploads_dir, settings.certified_dir, settings.qr_dir)

    def download_url(self, certified_name: str) -> str:
        return f"{self.settings.public_base_url}/api/download/{quote(certified_name)}"

    def certify(self, data: bytes, filename: str | None) -> CertificationResult:
        name = validate_upload(self.settings, filename, data)

        raw_path = atomic_write(self.settings.uploads_dir / unique_upload_name(name), data)
        qr_path: Path | None = None
        try:
            # Fingerprint of the ORIGINAL upload, before any certificate is added
            document_hash = digest_bytes(data)
            certificate_number = generate_certificate_number()
            logger.info(f"[UPLOAD] {name}: {certificate_number} hash={document_hash[:20]}...")

            registration = self.registry.register(certificate_number, document_hash)

            qr_data = encode_payload(certificate_number, document_hash)
            qr_png = render_qr_png(qr_data)
            qr_path = atomic_write(self.settings.qr_dir / f"{certificate_number}.png", qr_png)

            certified_path = stamp_document(
                data,
                name,
                registration.record,
                self.settings.certified_dir,
                qr_png=qr_png,
                verify_url=self.settings.public_base_url,
            )
        except Exception:
            remove_quietly(raw_path, qr_path)
            raise

        download_url = self.download_url(certified_path.name)
        logger.info(f"[UPLOAD] Complete. Download URL: {download_url}")
        return CertificationResult(
            registration=registration,
            file_name=name,
            file_size=len(data),
            certified_path=certified_path,
            download_url=download_url,
            qr_data=qr_data,
        )
