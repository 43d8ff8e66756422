import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the working directory (falls back to real env vars)
load_dotenv(Path.cwd() / ".env")

# ── LocalNet defaults ─────────────────────────────────────────────────────────
LOCALNET_ALGOD_URL   = "http://localhost:4001"
LOCALNET_ALGOD_TOKEN = "a" * 64

ALLOWED_EXTENSIONS = (".pdf", ".png", ".jpg", ".jpeg", ".txt")
MAX_UPLOAD_BYTES   = 10 * 1024 * 1024


def _split_origins(raw: str) -> tuple[str, ...]:
    return tuple(o.strip() for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the API and the ledger client."""

    ledger_backend: str = "local"
    algod_url: str = LOCALNET_ALGOD_URL
    algod_token: str = LOCALNET_ALGOD_TOKEN
    app_id_path: Path = Path("contracts/app-id.txt")
    app_spec_path: Path = Path(
        "contracts/smart_contracts/artifacts/document_registry/DocumentRegistry.arc56.json"
    )
    signer_mnemonic: str = ""
    data_dir: Path = Path("data")
    public_base_url: str = "http://localhost:8000"
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    allowed_extensions: tuple[str, ...] = ALLOWED_EXTENSIONS
    cors_origins: tuple[str, ...] = field(default=("*",))
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ledger_backend=os.getenv("LEDGER_BACKEND", "local").strip().lower(),
            algod_url=os.getenv("ALGOD_URL", LOCALNET_ALGOD_URL),
            algod_token=os.getenv("ALGOD_TOKEN", LOCALNET_ALGOD_TOKEN),
            app_id_path=Path(os.getenv("APP_ID_PATH", str(cls.app_id_path))),
            app_spec_path=Path(os.getenv("APP_SPEC_PATH", str(cls.app_spec_path))),
            signer_mnemonic=os.getenv("SIGNER_MNEMONIC", "").strip(),
            data_dir=Path(os.getenv("DATA_DIR", "data")),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(MAX_UPLOAD_BYTES))),
            cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "*")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    # ── Filesystem layout ─────────────────────────────────────────────────────
    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def certified_dir(self) -> Path:
        return self.data_dir / "certified-documents"

    @property
    def qr_dir(self) -> Path:
        return self.data_dir / "qr-codes"

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / "ledger.jsonl"
