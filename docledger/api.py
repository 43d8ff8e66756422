import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .errors import DocLedgerError, NotFound, ValidationError
from .ledger import LedgerRegistry, open_registry
from .reconciler import Reconciler, registration_date
from .service import CertificationService, validate_upload
from .storage import resolve_in

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain; charset=utf-8",
}


class VerifyRequest(BaseModel):
    certificateNumber: str | None = None
    documentHash: str | None = None


class QrVerifyRequest(BaseModel):
    qrData: str | None = None


# ── Dependencies ──────────────────────────────────────────────────────────────
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> LedgerRegistry:
    return request.app.state.registry


def get_service(request: Request) -> CertificationService:
    return request.app.state.service


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


async def read_upload(document: UploadFile | None, settings: Settings) -> tuple[str, bytes]:
    if document is None or not document.filename:
        raise ValidationError("No file uploaded")
    # One byte past the limit is enough to reject oversized uploads
    data = await document.read(settings.max_upload_bytes + 1)
    return validate_upload(settings, document.filename, data), data


# ── Routes ────────────────────────────────────────────────────────────────────
router = APIRouter(prefix="/api")


@router.post("/upload")
async def upload_document(
    document: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
    service: CertificationService = Depends(get_service),
):
    """Fingerprint, register and certify an uploaded document."""
    name, data = await read_upload(document, settings)
    result = await run_in_threadpool(service.certify, data, name)
    return result.to_dict()


@router.post("/verify")
async def verify_by_hash(body: VerifyRequest, reconciler: Reconciler = Depends(get_reconciler)):
    verdict = await run_in_threadpool(reconciler.verify_hash, body.certificateNumber, body.documentHash)
    return verdict.to_dict()


@router.post("/verify-upload")
async def verify_by_upload(
    document: UploadFile | None = File(None),
    certificateNumber: str | None = Form(None),
    settings: Settings = Depends(get_settings),
    reconciler: Reconciler = Depends(get_reconciler),
):
    """Verify a certified copy (embedded claim) or an original (needs certificateNumber)."""
    name, data = await read_upload(document, settings)
    verdict = await run_in_threadpool(reconciler.verify_document, data, name, certificateNumber)
    return verdict.to_dict()


@router.post("/verify-qr")
async def verify_by_qr(body: QrVerifyRequest, reconciler: Reconciler = Depends(get_reconciler)):
    verdict = await run_in_threadpool(reconciler.verify_payload, body.qrData)
    return verdict.to_dict()


@router.get("/document/{certificate_number}")
async def get_document(certificate_number: str, registry: LedgerRegistry = Depends(get_registry)):
    record = await run_in_threadpool(registry.lookup, certificate_number)
    if record is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": "Document not found with this certificate number",
                "code": NotFound.code,
                "exists": False,
            },
        )
    return {
        "success": True,
        "exists": True,
        "certificateNumber": record.certificate_number,
        "documentHash": record.document_hash,
        "timestamp": record.timestamp,
        "registrationDate": registration_date(record.timestamp),
    }


@router.get("/health")
async def health(registry: LedgerRegistry = Depends(get_registry)):
    return {
        "status": "ok",
        "message": "Document verification service is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ledger": registry.describe(),
    }


async def download_certified(filename: str, settings: Settings = Depends(get_settings)):
    path = resolve_in(settings.certified_dir, filename)
    if path is None:
        logger.warning(f"[DOWNLOAD] File not found: {filename}")
        raise NotFound("File not found", details=filename)
    return FileResponse(
        path,
        media_type=MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream"),
        filename=path.name,
    )


router.add_api_route("/download/{filename}", download_certified, methods=["GET"])


# ── Application ───────────────────────────────────────────────────────────────
def create_app(settings: Settings | None = None, registry: LedgerRegistry | None = None) -> FastAPI:
    """Build the API. A registry passed in stays owned by the caller."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ledger = registry if registry is not None else open_registry(settings)
        app.state.settings = settings
        app.state.registry = ledger
        app.state.service = CertificationService(settings, ledger)
        app.state.reconciler = Reconciler(ledger)
        try:
            yield
        finally:
            if registry is None:
                ledger.close()

    app = FastAPI(title="DocLedger Document Verification API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DocLedgerError)
    async def handle_docledger_error(request: Request, exc: DocLedgerError):
        if exc.status_code >= 500:
            logger.error(f"[API] {request.url.path}: {exc.message} ({exc.details})")
        else:
            logger.warning(f"[API] {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request",
                "code": ValidationError.code,
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"[API] {request.url.path}: unhandled error")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "message": "DocLedger API is running",
            "endpoints": [
                "/api/upload",
                "/api/verify",
                "/api/verify-upload",
                "/api/verify-qr",
                "/api/document/{certificateNumber}",
                "/api/download/{filename}",
                "/api/health",
            ],
        }

    app.add_api_route("/download/{filename}", download_certified, methods=["GET"])
    app.include_router(router)
    return app
