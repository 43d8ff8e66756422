import logging

from ..config import Settings
from ..errors import ValidationError
from .base import NOT_REGISTERED, LedgerRegistry, Registration, RegistrationRecord, VerifyResult
from .algorand import AlgorandRegistry
from .local import LocalRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "AlgorandRegistry",
    "NOT_REGISTERED",
    "LedgerRegistry",
    "LocalRegistry",
    "Registration",
    "RegistrationRecord",
    "VerifyResult",
    "open_registry",
]


def open_registry(settings: Settings) -> LedgerRegistry:
    """Construct the configured ledger client. The caller owns close()."""
    if settings.ledger_backend == "local":
        registry: LedgerRegistry = LocalRegistry(settings.ledger_path)
    elif settings.ledger_backend == "algorand":
        registry = AlgorandRegistry.from_artifacts(
            algod_url=settings.algod_url,
            algod_token=settings.algod_token,
            app_id_path=settings.app_id_path,
            app_spec_path=settings.app_spec_path,
            signer_mnemonic=settings.signer_mnemonic,
        )
    else:
        raise ValidationError(f"Unknown LEDGER_BACKEND: {settings.ledger_backend}")

    logger.info(f"[CHAIN] Ledger ready: {registry.describe()}")
    return registry
