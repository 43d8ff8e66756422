"""Certified copies of uploaded documents, and recovery of their payload.

Each format tag (pdf / image / text) maps to a stamp function and an extract
function. Stamping never touches the bytes that were fingerprinted: the
fingerprint is always of the original upload, and the stamped copy carries
that fingerprint as a claim to be checked against the ledger.
"""

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from .certificate import CertificatePayload, encode_payload, parse_payload
from .errors import RenderingFailure, ValidationError
from .ledger.base import RegistrationRecord
from .qr import scan_qr_codes
from .storage import atomic_write, clean_basename

logger = logging.getLogger(__name__)

TITLE        = "BLOCKCHAIN CERTIFIED DOCUMENT"
RULE         = "═" * 80
HASH_PREVIEW = 45

# ── Colours (RGB 0..1) ────────────────────────────────────────────────────────
BOX_BORDER  = (0.15, 0.35, 0.7)
TITLE_BLUE  = (0.1, 0.3, 0.7)
MARK_GREY   = (0.85, 0.85, 0.85)

# Image pages: image is scaled into this box, page gets a fixed band for the certificate
IMAGE_MAX_W   = 500
IMAGE_MAX_H   = 600
IMAGE_BAND_H  = 250
IMAGE_MIN_W   = 600

# Text trailer: everything before the last marker is the original upload
TRAILER_MARKER = f"\n{RULE}\n{TITLE:^80}\n{RULE}\n".encode("utf-8")
PAYLOAD_LABEL  = b"VERIFICATION DATA: "

_PDF_INFO_KEYS = ("title", "author", "subject", "keywords", "creator", "producer",
                  "creationDate", "modDate", "trapped")

FORMATS = {
    ".pdf":  "pdf",
    ".png":  "image",
    ".jpg":  "image",
    ".jpeg": "image",
    ".txt":  "text",
}
OUTPUT_SUFFIX = {"pdf": ".pdf", "image": ".pdf", "text": ".txt"}


@dataclass(frozen=True)
class StampContext:
    record: RegistrationRecord
    payload: str
    qr_png: bytes
    verify_url: str

    @property
    def certified_at(self) -> str:
        return format_timestamp(self.record.timestamp)


@dataclass(frozen=True)
class ExtractedCertificate:
    payload: CertificatePayload
    source: str
    # Text only: the original is a byte prefix, the trailer the rest
    original_bytes: bytes | None = None
    trailer: bytes | None = None
    verify_url: str = ""


def format_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_for(filename: str) -> str:
    kind = FORMATS.get(Path(filename).suffix.lower())
    if kind is None:
        raise ValidationError("Only PDF, PNG, JPG, JPEG, and TXT files are allowed", details=filename)
    return kind


def ensure_decodable(data: bytes, filename: str) -> str:
    """Reject uploads the stamper could not open, before anything is registered."""
    kind = format_for(filename)
    try:
        if kind == "image":
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
        elif kind == "pdf":
            fitz.open(stream=data, filetype="pdf").close()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, RuntimeError) as e:
        raise ValidationError(f"Uploaded {kind} could not be read", details=str(e)) from e
    return kind


def certified_filename(original_name: str, certificate_number: str) -> str:
    suffix = OUTPUT_SUFFIX[format_for(original_name)]
    return f"{clean_basename(original_name)}_CERTIFIED_{certificate_number}{suffix}"


# ── PDF drawing helpers ───────────────────────────────────────────────────────
def _draw_certificate_box(page: fitz.Page, ctx: StampContext, top: float = 60) -> None:
    width = page.rect.width
    margin = min(50, width * 0.08)
    box = fitz.Rect(margin, top, width - margin, top + 90)
    page.draw_rect(box, color=BOX_BORDER, fill=(1, 1, 1), width=2, fill_opacity=0.95)

    x = box.x0 + 15
    rec = ctx.record
    page.insert_text((x, top + 22), TITLE, fontname="hebo", fontsize=13, color=TITLE_BLUE)
    page.insert_text((x, top + 42), f"Certificate No: {rec.certificate_number}",
                     fontname="hebo", fontsize=12, color=(0, 0, 0))
    page.insert_text((x, top + 60), f"Hash: {rec.document_hash[:HASH_PREVIEW]}...",
                     fontname="helv", fontsize=8, color=(0.3, 0.3, 0.3))
    page.insert_text((x, top + 75), f"Verify at: {ctx.verify_url} | Secured on Blockchain",
                     fontname="helv", fontsize=8, color=(0.4, 0.4, 0.4))
    page.insert_text((x, top + 88), f"Certified: {ctx.certified_at}",
                     fontname="helv", fontsize=7, color=(0.5, 0.5, 0.5))

    qr_rect = fitz.Rect(box.x1 - 85, box.y0 + 5, box.x1 - 5, box.y1 - 5)
    page.insert_image(qr_rect, stream=ctx.qr_png)


def _draw_watermark(page: fitz.Page, text: str, centre: fitz.Point, size: float, opacity: float) -> None:
    length = fitz.get_text_length(text, fontname="hebo", fontsize=size)
    origin = fitz.Point(centre.x - length / 2, centre.y)
    page.insert_text(origin, text, fontname="hebo", fontsize=size, color=MARK_GREY,
                     fill_opacity=opacity, morph=(centre, fitz.Matrix(-45)))


def _draw_corner_tag(page: fitz.Page, certificate_number: str) -> None:
    text = f"CERT: {certificate_number}"
    length = fitz.get_text_length(text, fontname="helv", fontsize=8)
    rect = page.rect
    page.insert_text((rect.width - length - 30, rect.height - 20), text,
                     fontname="helv", fontsize=8, color=(0.6, 0.6, 0.6), fill_opacity=0.7)


def _write_metadata(doc: fitz.Document, ctx: StampContext) -> None:
    meta = {k: v for k, v in (doc.metadata or {}).items() if k in _PDF_INFO_KEYS and v}
    meta["subject"] = ctx.payload
    meta["keywords"] = f"certificate:{ctx.record.certificate_number}"
    doc.set_metadata(meta)


# ── Stampers ──────────────────────────────────────────────────────────────────
def _stamp_pdf(data: bytes, ctx: StampContext) -> bytes:
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        if doc.needs_pass:
            raise RenderingFailure("Encrypted PDFs cannot be certified")
        if doc.page_count == 0:
            raise RenderingFailure("PDF has no pages")

        cert = ctx.record.certificate_number
        for index, page in enumerate(doc):
            if index == 0:
                _draw_certificate_box(page, ctx)
            centre = fitz.Point(page.rect.width / 2, page.rect.height / 2)
            _draw_watermark(page, f"CERTIFIED • {cert}", centre, size=35, opacity=0.3)
            _draw_corner_tag(page, cert)

        _write_metadata(doc, ctx)
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


def _stamp_image(data: bytes, ctx: StampContext) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        width, height = img.size

    ratio = min(1.0, IMAGE_MAX_W / width, IMAGE_MAX_H / height)
    img_w, img_h = width * ratio, height * ratio
    page_w = max(img_w + 100, IMAGE_MIN_W)
    page_h = img_h + IMAGE_BAND_H

    doc = fitz.open()
    try:
        page = doc.new_page(width=page_w, height=page_h)
        _draw_certificate_box(page, ctx)

        x0 = (page_w - img_w) / 2
        y1 = page_h - 40
        image_rect = fitz.Rect(x0, y1 - img_h, x0 + img_w, y1)
        page.insert_image(image_rect, stream=data)

        cert = ctx.record.certificate_number
        centre = fitz.Point((image_rect.x0 + image_rect.x1) / 2, (image_rect.y0 + image_rect.y1) / 2)
        _draw_watermark(page, f"CERTIFIED • {cert}", centre, size=25, opacity=0.4)
        _draw_corner_tag(page, cert)

        _write_metadata(doc, ctx)
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


def render_text_trailer(record: RegistrationRecord, verify_url: str) -> bytes:
    """The exact bytes appended after a certified text document."""
    payload = encode_payload(record.certificate_number, record.document_hash)
    body = "\n".join([
        "",
        f"CERTIFICATE NUMBER: {record.certificate_number}",
        "",
        f"DOCUMENT HASH: {record.document_hash}",
        "",
        f"CERTIFICATION DATE: {format_timestamp(record.timestamp)}",
        "",
        f"VERIFICATION: {verify_url}",
        "",
        "STATUS: SECURED ON BLOCKCHAIN",
        "",
        f"{PAYLOAD_LABEL.decode()}{payload}",
        RULE,
        "END OF CERTIFIED DOCUMENT",
        RULE,
        "",
    ])
    return TRAILER_MARKER + body.encode("utf-8")


def _stamp_text(data: bytes, ctx: StampContext) -> bytes:
    return data + render_text_trailer(ctx.record, ctx.verify_url)


_STAMPERS: dict[str, Callable[[bytes, StampContext], bytes]] = {
    "pdf": _stamp_pdf,
    "image": _stamp_image,
    "text": _stamp_text,
}


def stamp_document(
    data: bytes,
    original_name: str,
    record: RegistrationRecord,
    output_dir: Path,
    *,
    qr_png: bytes,
    verify_url: str,
) -> Path:
    """Render the certified copy of `data` into `output_dir`.

    The file appears under its final name only once fully written; on any
    failure nothing is left behind and RenderingFailure is raised.
    """
    kind = format_for(original_name)
    ctx = StampContext(
        record=record,
        payload=encode_payload(record.certificate_number, record.document_hash),
        qr_png=qr_png,
        verify_url=verify_url,
    )
    out_path = Path(output_dir) / certified_filename(original_name, record.certificate_number)

    try:
        rendered = _STAMPERS[kind](data, ctx)
        atomic_write(out_path, rendered)
    except RenderingFailure:
        raise
    except Exception as e:
        logger.error(f"[STAMP] Failed to certify {original_name}: {e}")
        raise RenderingFailure("Failed to process document and add certificate", details=str(e)) from e

    logger.info(f"[STAMP] {kind} certified -> {out_path.name} ({out_path.stat().st_size} bytes)")
    return out_path


# ── Extraction ────────────────────────────────────────────────────────────────
def _looks_like_payload(text: str | None) -> bool:
    return bool(text) and "certificateNumber" in text


def _first_payload(candidates: list[str], source: str) -> ExtractedCertificate | None:
    for text in candidates:
        if _looks_like_payload(text):
            return ExtractedCertificate(payload=parse_payload(text), source=source)
    return None


def _extract_pdf(data: bytes) -> ExtractedCertificate | None:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise ValidationError("Uploaded PDF could not be read", details=str(e)) from e

    try:
        subject = (doc.metadata or {}).get("subject")
        if _looks_like_payload(subject):
            return ExtractedCertificate(payload=parse_payload(subject), source="pdf-metadata")
        if doc.page_count == 0:
            return None

        pix = doc[0].get_pixmap(matrix=fitz.Matrix(2, 2), alpha=False)
        page_img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        return _first_payload(scan_qr_codes(page_img), source="qr")
    finally:
        doc.close()


def _extract_image(data: bytes) -> ExtractedCertificate | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            codes = scan_qr_codes(img)
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError("Uploaded image could not be read", details=str(e)) from e
    return _first_payload(codes, source="qr")


def _trailer_fields(block: bytes) -> dict[bytes, str]:
    fields = {}
    for line in block.splitlines():
        label, sep, value = line.partition(b": ")
        if sep:
            fields[label] = value.decode("utf-8", errors="replace").strip()
    return fields


def _extract_text(data: bytes) -> ExtractedCertificate | None:
    """Read the claim from a text trailer.

    The whole trailer is returned with the claim so it can be compared against
    a fresh rendering. A damaged marker still yields the claim when the payload
    line survives, but with an empty trailer that can never match.
    """
    payload_label = PAYLOAD_LABEL.rstrip(b": ")
    start = data.rfind(TRAILER_MARKER)
    if start < 0:
        raw = _trailer_fields(data).get(payload_label)
        if not _looks_like_payload(raw):
            return None
        return ExtractedCertificate(payload=parse_payload(raw), source="text-trailer", trailer=b"")

    fields = _trailer_fields(data[start + len(TRAILER_MARKER):])
    raw = fields.get(payload_label)
    if raw is not None:
        payload = parse_payload(raw)
    elif fields.get(b"CERTIFICATE NUMBER") and fields.get(b"DOCUMENT HASH"):
        payload = parse_payload(encode_payload(fields[b"CERTIFICATE NUMBER"], fields[b"DOCUMENT HASH"]))
    else:
        return None

    return ExtractedCertificate(
        payload=payload,
        source="text-trailer",
        original_bytes=data[:start],
        trailer=data[start:],
        verify_url=fields.get(b"VERIFICATION", ""),
    )


_EXTRACTORS: dict[str, Callable[[bytes], ExtractedCertificate | None]] = {
    "pdf": _extract_pdf,
    "image": _extract_image,
    "text": _extract_text,
}


def extract_payload(data: bytes, filename: str) -> ExtractedCertificate | None:
    """Recover the embedded certificate payload, or None if the file has none.

    Raises InvalidCertificateData when a payload is present but malformed.
    """
    return _EXTRACTORS[format_for(filename)](data)
